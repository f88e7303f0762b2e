from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from services.client import LibreLinkUpClient
from transport.http import HttpTransport

GLOBAL_HOST = "https://api.libreview.io"
EU_HOST = "https://api-eu.libreview.io"
US_HOST = "https://api-us.libreview.io"

Outcome = Union[Tuple[int, Any], Exception, Callable[[httpx.Request], httpx.Response]]


def login_ok(token: str = "token-1", user_id: str = "user-1", expires: int = 0) -> Dict[str, Any]:
    return {
        "status": 0,
        "data": {
            "user": {"id": user_id, "firstName": "Fran", "lastName": "Follower"},
            "authTicket": {"token": token, "expires": expires, "duration": 15552000000},
        },
    }


def login_redirect(region: str) -> Dict[str, Any]:
    return {"status": 0, "data": {"redirect": True, "region": region}}


def measurement(
    value: float,
    trend: Any = 3,
    timestamp: str = "1/2/2024 3:04:05 PM",
) -> Dict[str, Any]:
    return {
        "FactoryTimestamp": timestamp,
        "Timestamp": timestamp,
        "type": 1,
        "ValueInMgPerDl": value,
        "Value": value,
        "TrendArrow": trend,
        "MeasurementColor": 1,
        "GlucoseUnits": 1,
        "isHigh": False,
        "isLow": False,
    }


def connection_entry(
    patient_id: str,
    first_name: str,
    last_name: str,
    target_low: float = 70,
    target_high: float = 180,
) -> Dict[str, Any]:
    return {
        "id": f"conn-{patient_id}",
        "patientId": patient_id,
        "country": "DE",
        "status": 2,
        "firstName": first_name,
        "lastName": last_name,
        "targetLow": target_low,
        "targetHigh": target_high,
        "uom": 1,
        "sensor": {"deviceId": "", "sn": "0M0001", "a": 1700000000, "w": 60, "pt": 4},
    }


def connections_body(*entries: Dict[str, Any]) -> Dict[str, Any]:
    return {"status": 0, "data": list(entries)}


def graph_body(current: Dict[str, Any], history: List[Any], patient_id: str = "patient-1") -> Dict[str, Any]:
    return {
        "status": 0,
        "data": {
            "connection": {
                "patientId": patient_id,
                "glucoseMeasurement": current,
                "glucoseItem": current,
            },
            "activeSensors": [{"sensor": {"sn": "0M0001"}, "device": {"did": "device-1"}}],
            "graphData": history,
        },
    }


class FakeLibreView:
    """Scriptable stand-in for the service, served through ``httpx.MockTransport``.

    Outcomes registered for a route are consumed in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Outcome]] = {}
        self._hits: Dict[Tuple[str, str], int] = defaultdict(int)
        self._lock = Lock()

    def add(self, method: str, url: str, *outcomes: Outcome) -> None:
        self._routes[(method, url)] = list(outcomes)

    def calls(self, method: str, url: str) -> int:
        return self._hits[(method, url)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        with self._lock:
            self.requests.append(request)
            self._hits[key] += 1
            outcomes = self._routes.get(key)
            if not outcomes:
                return httpx.Response(404, json={"status": 404})
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        status, payload = outcome
        return httpx.Response(status, json=payload)

    def transport(self) -> HttpTransport:
        client = httpx.Client(transport=httpx.MockTransport(self.handler))
        return HttpTransport("4.16.0", client=client)


def login_url(host: str) -> str:
    return f"{host}/llu/auth/login"


def connections_url(host: str) -> str:
    return f"{host}/llu/connections"


def graph_url(host: str, patient_id: str) -> str:
    return f"{host}/llu/connections/{patient_id}/graph"


@pytest.fixture()
def service() -> FakeLibreView:
    return FakeLibreView()


@pytest.fixture()
def client(service: FakeLibreView) -> LibreLinkUpClient:
    client = LibreLinkUpClient(
        "follower@example.com",
        "secret",
        region="eu",
        transport=service.transport(),
    )
    yield client
    client.close()
