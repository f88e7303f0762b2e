"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class TrendType(str, Enum):
    """Direction of recent glucose change."""

    SINGLE_DOWN = "SingleDown"
    FORTY_FIVE_DOWN = "FortyFiveDown"
    FLAT = "Flat"
    FORTY_FIVE_UP = "FortyFiveUp"
    SINGLE_UP = "SingleUp"
    NOT_COMPUTABLE = "NotComputable"


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class AuthToken:
    """Bearer token issued by a login call against ``host``."""

    token: str = field(repr=False)
    host: str
    expires: Optional[datetime] = None
    account_id: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires is None:
            return False
        current = now or datetime.now(timezone.utc)
        return current >= self.expires


@dataclass(frozen=True, slots=True)
class TargetRange:
    low: float
    high: float


@dataclass(frozen=True, slots=True)
class Connection:
    """A patient the follower account is allowed to view."""

    id: str
    patient_id: str
    first_name: str
    last_name: str
    target_range: Optional[TargetRange] = None
    sensor: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True, slots=True)
class GlucoseReading:
    """A single glucose value in mg/dL."""

    value: float
    trend: TrendType
    timestamp: datetime
    is_high: bool
    is_low: bool


@dataclass(frozen=True, slots=True)
class ReadResult:
    current: GlucoseReading
    history: List[GlucoseReading]
    target_range: TargetRange


@dataclass(frozen=True, slots=True)
class RawReadResult:
    """Unmapped graph payload for callers that want every field."""

    connection: Dict[str, Any]
    active_sensors: List[Dict[str, Any]]
    graph_data: List[Dict[str, Any]]
