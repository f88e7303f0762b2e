from __future__ import annotations

import hashlib
import threading

import httpx
import pytest

from conftest import (
    EU_HOST,
    GLOBAL_HOST,
    FakeLibreView,
    connection_entry,
    connections_body,
    connections_url,
    graph_body,
    graph_url,
    login_ok,
    login_url,
    measurement,
)
from models.records import TargetRange, TrendType
from services.client import LibreLinkUpClient
from services.errors import BadCredentials, MalformedResponse, NetworkError, NoConnections, UnknownRegion
from services.selector import ByName


def test_read_end_to_end(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok(token="abc", user_id="user-9")))
    service.add(
        "GET",
        connections_url(EU_HOST),
        (200, connections_body(connection_entry("patient-1", "Jane", "Doe", 80, 160))),
    )
    service.add(
        "GET",
        graph_url(EU_HOST, "patient-1"),
        (200, graph_body(measurement(170, trend=4), [measurement(150)])),
    )

    result = client.read()

    assert result.current.value == 170
    assert result.current.trend is TrendType.FORTY_FIVE_UP
    assert result.current.is_high is True
    assert result.target_range == TargetRange(low=80, high=160)
    assert len(result.history) == 1

    graph_request = service.requests[-1]
    assert graph_request.headers["Authorization"] == "Bearer abc"
    assert graph_request.headers["account-id"] == hashlib.sha256(b"user-9").hexdigest()
    assert graph_request.headers["version"] == "4.16.0"
    assert graph_request.headers["product"] == "llu.ios"


def test_read_logs_in_once_across_reads(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", connections_url(EU_HOST), (200, connections_body(connection_entry("patient-1", "Jane", "Doe"))))
    service.add("GET", graph_url(EU_HOST, "patient-1"), (200, graph_body(measurement(100), [])))

    client.read()
    client.read()

    assert service.calls("POST", login_url(EU_HOST)) == 1
    assert service.calls("GET", connections_url(EU_HOST)) == 2


def test_read_uses_named_connection(service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add(
        "GET",
        connections_url(EU_HOST),
        (
            200,
            connections_body(
                connection_entry("patient-1", "Jane", "Doe"),
                connection_entry("patient-2", "John", "Doe"),
            ),
        ),
    )
    service.add("GET", graph_url(EU_HOST, "patient-2"), (200, graph_body(measurement(99), [], "patient-2")))

    with LibreLinkUpClient(
        "follower@example.com",
        "secret",
        region="EU",
        strategy=ByName("John Doe"),
        transport=service.transport(),
    ) as client:
        result = client.read()

    assert result.current.value == 99
    assert service.calls("GET", graph_url(EU_HOST, "patient-1")) == 0


def test_read_without_connections_fails(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", connections_url(EU_HOST), (200, connections_body()))

    with pytest.raises(NoConnections):
        client.read()


@pytest.mark.parametrize("username, password", [("", "secret"), ("   ", "secret"), ("me@example.com", "")])
def test_constructor_rejects_empty_credentials(username: str, password: str) -> None:
    with pytest.raises(BadCredentials):
        LibreLinkUpClient(username, password, transport=FakeLibreView().transport())


def test_constructor_rejects_unknown_region() -> None:
    with pytest.raises(UnknownRegion):
        LibreLinkUpClient("me@example.com", "secret", region="mars", transport=FakeLibreView().transport())


def test_read_averaged_reports_average(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", connections_url(EU_HOST), (200, connections_body(connection_entry("patient-1", "Jane", "Doe"))))
    service.add(
        "GET",
        graph_url(EU_HOST, "patient-1"),
        (200, graph_body(measurement(100, timestamp="1/2/2024 3:00:00 PM"), [])),
        (200, graph_body(measurement(200, timestamp="1/2/2024 3:01:00 PM"), [measurement(100)])),
    )
    received = []
    done = threading.Event()

    def on_average(average, batch, history) -> None:
        received.append((average, batch, history))
        done.set()

    poller = client.read_averaged(amount=2, callback=on_average, interval_ms=10)
    try:
        assert done.wait(5.0)
    finally:
        poller.cancel()
        poller.wait(timeout=5.0)

    average, batch, history = received[0]
    assert average.value == pytest.approx(150)
    assert [r.value for r in batch] == [100, 200]
    assert [r.value for r in history] == [100]


@pytest.mark.parametrize("interval_ms", [0, -5])
def test_read_averaged_rejects_non_positive_interval(client: LibreLinkUpClient, interval_ms: int) -> None:
    with pytest.raises(ValueError):
        client.read_averaged(amount=1, callback=lambda *a: None, interval_ms=interval_ms)


def test_read_averaged_rejects_zero_amount(client: LibreLinkUpClient) -> None:
    with pytest.raises(ValueError):
        client.read_averaged(amount=0, callback=lambda *a: None, interval_ms=10)


def test_country_config_needs_no_login(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add(
        "GET",
        f"{GLOBAL_HOST}/llu/config/country",
        (200, {"status": 0, "data": {"lsl": {"minGlucose": 40}}}),
    )

    config = client.get_country_config("DE")

    assert config == {"lsl": {"minGlucose": 40}}
    request = service.requests[-1]
    assert "Authorization" not in request.headers
    assert request.url.params["country"] == "DE"
    assert request.url.params["version"] == "4.16.0"
    assert service.calls("POST", login_url(EU_HOST)) == 0


def test_get_user_returns_data(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", f"{EU_HOST}/user", (200, {"status": 0, "data": {"user": {"id": "user-1"}}}))

    assert client.get_user() == {"user": {"id": "user-1"}}


def test_notification_settings_use_connection_id(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", connections_url(EU_HOST), (200, connections_body(connection_entry("patient-1", "Jane", "Doe"))))
    service.add(
        "GET",
        f"{EU_HOST}/llu/notifications/settings/conn-patient-1",
        (200, {"status": 0, "data": {"alarmRules": {}}}),
    )

    assert client.get_notification_settings() == {"alarmRules": {}}


def test_get_account_without_data_is_malformed(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add("GET", f"{EU_HOST}/account", (200, {"status": 0}))

    with pytest.raises(MalformedResponse):
        client.get_account()


def test_region_is_normalized_once() -> None:
    client = LibreLinkUpClient("me@example.com", "secret", region="  EU ", transport=FakeLibreView().transport())

    assert client.region == "eu"
    assert client.session.host == EU_HOST


def test_undecodable_response_surfaces_as_network_error(client: LibreLinkUpClient, service: FakeLibreView) -> None:
    service.add("POST", login_url(EU_HOST), (200, login_ok()))
    service.add(
        "GET",
        connections_url(EU_HOST),
        lambda request: httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all"),
    )

    with pytest.raises(NetworkError):
        client.read()
