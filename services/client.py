"""Public entry point tying authentication, selection and reads together."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from logging_config import configure_logging
from models.records import (
    AuthToken,
    Connection,
    Credentials,
    GlucoseReading,
    RawReadResult,
    ReadResult,
    TargetRange,
)
from models.regions import GLOBAL_REGION, REGION_HOSTS, host_for_region
from services.auth import AuthSession, Transport, check_response
from services.errors import BadCredentials, MalformedResponse
from services.fetcher import DEFAULT_TARGET_RANGE, ReadingFetcher
from services.poller import AverageCallback, AveragingPoller, ErrorCallback
from services.selector import ByName, ConnectionSelector, SelectionStrategy
from settings import DEFAULT_CLIENT_VERSION, get_settings
from transport.http import HttpTransport

USER_ENDPOINT = "/user"
ACCOUNT_ENDPOINT = "/account"
NOTIFICATION_SETTINGS_ENDPOINT = "/llu/notifications/settings"
COUNTRY_CONFIG_ENDPOINT = "/llu/config/country"


class LibreLinkUpClient:
    """Follower client for the LibreLinkUp service.

    Usage:
        with LibreLinkUpClient("email@example.com", "password") as client:
            data = client.read()
            print(data.current.value, data.current.trend)

    Connections and graph data are fetched again on every read; only the
    token and the resolved regional host are kept between calls.
    """

    def __init__(
        self,
        username: str,
        password: str,
        region: Optional[str] = None,
        client_version: Optional[str] = None,
        strategy: Optional[SelectionStrategy] = None,
        transport: Optional[Transport] = None,
        target_range: Optional[TargetRange] = None,
        timeout: float = 30.0,
    ) -> None:
        if not username.strip():
            raise BadCredentials("username must not be empty")
        if not password:
            raise BadCredentials("password must not be empty")

        self.region = (region or GLOBAL_REGION).strip().lower()
        host = host_for_region(self.region)
        self.client_version = client_version or DEFAULT_CLIENT_VERSION

        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpTransport(
            self.client_version, timeout=timeout
        )
        self.session = AuthSession(Credentials(username, password), self._transport, host)
        self.selector = ConnectionSelector(strategy)
        self.fetcher = ReadingFetcher(self.session, target_range or DEFAULT_TARGET_RANGE)

    def __enter__(self) -> "LibreLinkUpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpTransport):
            self._transport.close()

    def login(self) -> AuthToken:
        return self.session.authenticate()

    def get_connections(self) -> List[Connection]:
        return self.fetcher.fetch_connections()

    def select_connection(self) -> Connection:
        return self.selector.select(self.get_connections())

    def read(self) -> ReadResult:
        """Current reading plus history for the selected connection."""
        return self.fetcher.fetch(self.select_connection())

    def read_raw(self) -> RawReadResult:
        return self.fetcher.fetch_raw(self.select_connection())

    def read_averaged(
        self,
        amount: int,
        callback: AverageCallback,
        interval_ms: int,
        on_error: Optional[ErrorCallback] = None,
        dedupe: bool = False,
    ) -> AveragingPoller:
        """Start polling every ``interval_ms`` and report the average of each ``amount`` reads.

        ``callback`` receives ``(average, readings, history)`` on the poller's
        worker thread. The returned poller is already running; call
        ``cancel()`` on it to stop.
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        poller = AveragingPoller(
            fetch=self.read,
            amount=amount,
            callback=callback,
            interval=interval_ms / 1000.0,
            on_error=on_error,
            dedupe=dedupe,
        )
        return poller.start()

    def get_user(self) -> Dict[str, Any]:
        return self._data(self.session.get(USER_ENDPOINT), USER_ENDPOINT)

    def get_account(self) -> Dict[str, Any]:
        return self._data(self.session.get(ACCOUNT_ENDPOINT), ACCOUNT_ENDPOINT)

    def get_logbook(self, connection: Optional[Connection] = None) -> List[GlucoseReading]:
        return self.fetcher.fetch_logbook(connection or self.select_connection())

    def get_notification_settings(
        self, connection: Optional[Connection] = None
    ) -> Dict[str, Any]:
        target = connection or self.select_connection()
        path = f"{NOTIFICATION_SETTINGS_ENDPOINT}/{target.id}"
        return self._data(self.session.get(path), path)

    def get_country_config(self, country: str, version: Optional[str] = None) -> Dict[str, Any]:
        """Country configuration from the global host; needs no login."""
        query = urlencode({"country": country, "version": version or self.client_version})
        url = f"{REGION_HOSTS[GLOBAL_REGION]}{COUNTRY_CONFIG_ENDPOINT}?{query}"
        status, body = self._transport.get(url, {})
        payload = check_response(f"GET {COUNTRY_CONFIG_ENDPOINT}", status, body)
        return self._data(payload, COUNTRY_CONFIG_ENDPOINT)

    @staticmethod
    def _data(body: Dict[str, Any], label: str) -> Dict[str, Any]:
        data = body.get("data")
        if not isinstance(data, dict):
            raise MalformedResponse(f"{label} response has no data object.")
        return data


@lru_cache
def build_default_client() -> LibreLinkUpClient:
    """Factory that wires the client from environment settings."""
    configure_logging()
    settings = get_settings()
    strategy = ByName(settings.connection_name) if settings.connection_name else None
    return LibreLinkUpClient(
        username=settings.username,
        password=settings.password,
        region=settings.region,
        client_version=settings.client_version,
        strategy=strategy,
        target_range=TargetRange(low=settings.target_low, high=settings.target_high),
        timeout=settings.request_timeout,
    )
