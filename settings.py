from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_USERNAME_ENV = "LIBRELINKUP_USERNAME"
_PASSWORD_ENV = "LIBRELINKUP_PASSWORD"
_REGION_ENV = "LIBRELINKUP_REGION"
_CLIENT_VERSION_ENV = "LIBRELINKUP_CLIENT_VERSION"
_CONNECTION_NAME_ENV = "LIBRELINKUP_CONNECTION_NAME"
_TIMEOUT_ENV = "LIBRELINKUP_TIMEOUT"
_TARGET_LOW_ENV = "LIBRELINKUP_TARGET_LOW"
_TARGET_HIGH_ENV = "LIBRELINKUP_TARGET_HIGH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_CLIENT_VERSION = "4.16.0"
DEFAULT_TARGET_LOW = 70.0
DEFAULT_TARGET_HIGH = 180.0


@dataclass(frozen=True)
class Settings:
    username: str
    password: str
    region: str
    client_version: str
    connection_name: Optional[str]
    request_timeout: float
    target_low: float
    target_high: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        username=_read_str_env(_USERNAME_ENV, ""),
        # Passwords may legitimately carry surrounding whitespace.
        password=os.getenv(_PASSWORD_ENV) or "",
        region=_read_str_env(_REGION_ENV, "global").lower(),
        client_version=_read_str_env(_CLIENT_VERSION_ENV, DEFAULT_CLIENT_VERSION),
        connection_name=_read_optional_env(_CONNECTION_NAME_ENV, None),
        request_timeout=_read_positive_float(_TIMEOUT_ENV, 30.0),
        target_low=_read_positive_float(_TARGET_LOW_ENV, DEFAULT_TARGET_LOW),
        target_high=_read_positive_float(_TARGET_HIGH_ENV, DEFAULT_TARGET_HIGH),
        log_level=_read_log_level("INFO"),
    )
