"""Login, regional redirect handling and token lifecycle."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from pydantic import ValidationError

from models.records import AuthToken, Credentials
from models.regions import host_for_region
from models.schemas import LoginResponse
from services.errors import (
    AccountLocked,
    AdditionalActionRequired,
    BadCredentials,
    MalformedResponse,
    NetworkError,
    TooManyRedirects,
    Unauthorized,
)

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "/llu/auth/login"

_BAD_CREDENTIALS_STATUS = 2
_ADDITIONAL_STEP_STATUS = 4
_REJECTED_STATUSES = {401, 403}
_EXPIRY_MARGIN = timedelta(seconds=60)


class Transport(Protocol):
    def post(self, url: str, headers: Dict[str, str], body: Any) -> Tuple[int, Optional[Any]]:
        ...

    def get(self, url: str, headers: Dict[str, str]) -> Tuple[int, Optional[Any]]:
        ...


def check_response(label: str, status: int, body: Optional[Any]) -> Dict[str, Any]:
    """Map a non-authentication HTTP outcome to a JSON object or an error."""
    if status == 429 or status >= 500:
        raise NetworkError(f"{label} failed with HTTP {status}.")
    if not 200 <= status < 300:
        raise MalformedResponse(f"{label} failed with HTTP {status}.")
    if not isinstance(body, dict):
        raise MalformedResponse(f"{label} did not return a JSON object.")
    return body


class RedirectResolver:
    """Follows at most one regional redirect issued by the login endpoint."""

    def __init__(self, login: Callable[[str], LoginResponse]) -> None:
        self._login = login

    def resolve(self, host: str, response: LoginResponse) -> Tuple[str, LoginResponse]:
        """Return the host to bind to and the login response obtained there.

        Regions do not chain: a redirect received from the redirected host,
        or a redirect back to the host just called, is refused.
        """
        if not response.data.redirect:
            return host, response

        target = self._target_host(response)
        if target == host:
            raise TooManyRedirects(f"Login at {host} redirected back to itself.")

        logger.info(
            "Login redirected to regional host",
            extra={"region": response.data.region, "host": target},
        )
        redirected = self._login(target)
        if redirected.data.redirect:
            raise TooManyRedirects(
                f"Regional host {target} redirected login again "
                f"(region={redirected.data.region!r})."
            )
        return target, redirected

    @staticmethod
    def _target_host(response: LoginResponse) -> str:
        region = response.data.region
        if not region:
            raise MalformedResponse("Login redirect did not name a region.")
        return host_for_region(region)


class AuthSession:
    """Owns the credentials, the resolved host and the current token.

    The token is shared between foreground reads and background pollers, so
    every (re-)authentication runs under one lock.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport: Transport,
        host: str,
        resolver: Optional[RedirectResolver] = None,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._host = host
        self._resolver = resolver or RedirectResolver(self._login)
        self._token: Optional[AuthToken] = None
        self._lock = Lock()

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def host(self) -> str:
        return self._host

    @property
    def token(self) -> Optional[AuthToken]:
        return self._token

    def authenticate(self) -> AuthToken:
        """Log in unconditionally and replace the current token."""
        with self._lock:
            return self._authenticate_locked()

    def current_token(self) -> AuthToken:
        token = self._token
        if token is not None and not self._expiring(token):
            return token
        return self.refresh(stale=token)

    def refresh(self, stale: Optional[AuthToken]) -> AuthToken:
        """Replace ``stale`` unless another caller already did."""
        with self._lock:
            current = self._token
            if current is not None and current is not stale and not self._expiring(current):
                return current
            return self._authenticate_locked()

    def get(self, path: str) -> Dict[str, Any]:
        """GET an authorized endpoint, re-authenticating once if rejected."""
        token = self.current_token()
        status, body = self._authorized_get(token, path)
        if status in _REJECTED_STATUSES:
            logger.info(
                "Token rejected, re-authenticating",
                extra={"status_code": status, "host": token.host},
            )
            token = self.refresh(stale=token)
            status, body = self._authorized_get(token, path)
            if status in _REJECTED_STATUSES:
                raise Unauthorized(
                    f"GET {path} was rejected with HTTP {status} after re-authentication."
                )
        return check_response(f"GET {path}", status, body)

    def _authorized_get(self, token: AuthToken, path: str) -> Tuple[int, Optional[Any]]:
        headers = {"Authorization": f"Bearer {token.token}"}
        if token.account_id:
            headers["account-id"] = token.account_id
        return self._transport.get(f"{token.host}{path}", headers)

    def _authenticate_locked(self) -> AuthToken:
        host, response = self._resolver.resolve(self._host, self._login(self._host))
        token = self._token_from(host, response)
        self._host = host
        self._token = token
        logger.info("Authenticated", extra={"host": host})
        return token

    def _login(self, host: str) -> LoginResponse:
        body = {
            "email": self._credentials.username,
            "password": self._credentials.password,
        }
        status, payload = self._transport.post(f"{host}{LOGIN_ENDPOINT}", {}, body)
        if status == 401:
            raise BadCredentials()
        payload = check_response("Login", status, payload)

        try:
            response = LoginResponse.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponse(f"Unexpected login response: {exc}") from exc

        data = response.data
        if data.lockout is not None:
            raise AccountLocked(data.lockout.lockout)
        if response.status == _BAD_CREDENTIALS_STATUS:
            raise BadCredentials()
        if response.status == _ADDITIONAL_STEP_STATUS:
            step = data.step.component_name if data.step else "unknown"
            raise AdditionalActionRequired(step)
        return response

    @staticmethod
    def _token_from(host: str, response: LoginResponse) -> AuthToken:
        ticket = response.data.auth_ticket
        if ticket is None:
            raise MalformedResponse("Login response did not include an auth ticket.")

        expires = None
        if ticket.expires > 0:
            expires = datetime.fromtimestamp(ticket.expires, tz=timezone.utc)

        account_id = None
        if response.data.user is not None:
            account_id = hashlib.sha256(response.data.user.id.encode("utf-8")).hexdigest()

        return AuthToken(
            token=ticket.token,
            host=host,
            expires=expires,
            account_id=account_id,
        )

    @staticmethod
    def _expiring(token: AuthToken) -> bool:
        return token.is_expired(datetime.now(timezone.utc) + _EXPIRY_MARGIN)
