"""Exception hierarchy raised by the LibreLinkUp client."""

from __future__ import annotations

from typing import Optional


class LibreLinkUpError(Exception):
    """Base class for every error raised by this client."""


class BadCredentials(LibreLinkUpError):
    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or "Bad credentials. Use the credentials of your LibreLinkUp account, "
            "not those of your LibreLink account."
        )


class AccountLocked(LibreLinkUpError):
    def __init__(self, lockout_seconds: int) -> None:
        super().__init__(
            "Account temporarily locked after repeated failed logins. "
            f"Retry in {lockout_seconds} seconds."
        )
        self.lockout_seconds = lockout_seconds


class AdditionalActionRequired(LibreLinkUpError):
    def __init__(self, step: str) -> None:
        super().__init__(
            f"Additional action required for this account: {step}. "
            "Log in with the app, complete the step and try again."
        )
        self.step = step


class Unauthorized(LibreLinkUpError):
    """The service kept rejecting a request after a fresh login."""


class SelectionError(LibreLinkUpError):
    pass


class NoConnections(SelectionError):
    def __init__(self) -> None:
        super().__init__("This account does not follow any patients.")


class ConnectionNotFound(SelectionError):
    def __init__(self, identifier: Optional[str]) -> None:
        if identifier is None:
            message = "Connection function did not identify a connection."
        else:
            message = f"No connection matches {identifier!r}."
        super().__init__(message)
        self.identifier = identifier


class UnknownRegion(LibreLinkUpError):
    def __init__(self, region: str, available: str) -> None:
        super().__init__(f"Unknown region {region!r}. Available regions: {available}")
        self.region = region


class TooManyRedirects(LibreLinkUpError):
    pass


class NetworkError(LibreLinkUpError):
    """Transport-level failure; the same call may succeed later."""


class MalformedResponse(LibreLinkUpError):
    """A structurally required part of a response body was missing or invalid."""


TRANSIENT_ERRORS = (NetworkError, MalformedResponse)
