"""Connection listing and glucose graph retrieval."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from models.records import (
    Connection,
    GlucoseReading,
    RawReadResult,
    ReadResult,
    TargetRange,
    TrendType,
)
from models.schemas import ConnectionPayload, ConnectionsResponse, GlucoseItem, GraphPayload
from services.auth import AuthSession
from services.errors import MalformedResponse
from settings import DEFAULT_TARGET_HIGH, DEFAULT_TARGET_LOW

logger = logging.getLogger(__name__)

CONNECTIONS_ENDPOINT = "/llu/connections"

DEFAULT_TARGET_RANGE = TargetRange(low=DEFAULT_TARGET_LOW, high=DEFAULT_TARGET_HIGH)

# Keyed by the service's TrendArrow code.
TREND_BY_CODE: Dict[int, TrendType] = {
    0: TrendType.NOT_COMPUTABLE,
    1: TrendType.SINGLE_DOWN,
    2: TrendType.FORTY_FIVE_DOWN,
    3: TrendType.FLAT,
    4: TrendType.FORTY_FIVE_UP,
    5: TrendType.SINGLE_UP,
    6: TrendType.NOT_COMPUTABLE,
}

_SERVICE_TIMESTAMP_FORMAT = "%m/%d/%Y %I:%M:%S %p"


def trend_from_code(code: Any) -> TrendType:
    """Unknown or missing codes are not an error; the trend is advisory."""
    if isinstance(code, bool):
        return TrendType.NOT_COMPUTABLE
    try:
        return TREND_BY_CODE.get(code, TrendType.NOT_COMPUTABLE)
    except TypeError:
        return TrendType.NOT_COMPUTABLE


def parse_timestamp(value: str) -> datetime:
    """Parse a service timestamp (``1/2/2024 3:04:05 PM``, UTC) or ISO-8601."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    try:
        parsed = datetime.strptime(candidate, _SERVICE_TIMESTAMP_FORMAT)
    except ValueError:
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp format: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def map_reading(item: Any, target_range: TargetRange) -> GlucoseReading:
    """Build a reading from one raw measurement; upstream high/low flags are ignored.

    Raises ``ValueError`` (``ValidationError`` included) for unusable entries.
    """
    measurement = GlucoseItem.model_validate(item)
    value = measurement.value
    return GlucoseReading(
        value=value,
        trend=trend_from_code(measurement.trend_code),
        timestamp=parse_timestamp(measurement.timestamp),
        is_high=value > target_range.high,
        is_low=value < target_range.low,
    )


def connection_from_payload(payload: Dict[str, Any]) -> Connection:
    try:
        parsed = ConnectionPayload.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponse(f"Invalid connection entry: {exc}") from exc

    patient_id = parsed.patient_id or parsed.id
    if not patient_id:
        raise MalformedResponse("Connection entry has neither an id nor a patientId.")

    target_range: Optional[TargetRange] = None
    if parsed.target_range is not None:
        target_range = TargetRange(low=parsed.target_range.low, high=parsed.target_range.high)
    elif parsed.target_low and parsed.target_high:
        target_range = TargetRange(low=parsed.target_low, high=parsed.target_high)

    return Connection(
        id=parsed.id or patient_id,
        patient_id=patient_id,
        first_name=parsed.first_name,
        last_name=parsed.last_name,
        target_range=target_range,
        sensor=parsed.sensor,
        raw=payload,
    )


class ReadingFetcher:
    """Issues connection and graph requests through an ``AuthSession``."""

    def __init__(
        self,
        session: AuthSession,
        default_range: TargetRange = DEFAULT_TARGET_RANGE,
    ) -> None:
        self._session = session
        self.default_range = default_range

    def fetch_connections(self) -> List[Connection]:
        body = self._session.get(CONNECTIONS_ENDPOINT)
        try:
            response = ConnectionsResponse.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid connections response: {exc}") from exc
        return [connection_from_payload(entry) for entry in response.data]

    def fetch_raw(self, connection: Connection) -> RawReadResult:
        payload = self._graph(connection)
        return RawReadResult(
            connection=payload.connection,
            active_sensors=payload.active_sensors,
            graph_data=payload.graph_data,
        )

    def fetch(self, connection: Connection) -> ReadResult:
        payload = self._graph(connection)
        target_range = connection.target_range or self.default_range

        measurement = payload.connection.get("glucoseMeasurement") or payload.connection.get(
            "glucoseItem"
        )
        if measurement is None:
            raise MalformedResponse("Graph response has no current glucose measurement.")
        try:
            current = map_reading(measurement, target_range)
        except ValueError as exc:
            raise MalformedResponse(f"Invalid current glucose measurement: {exc}") from exc

        history = self._map_entries(payload.graph_data, target_range, connection, "graph")
        return ReadResult(current=current, history=history, target_range=target_range)

    def fetch_logbook(self, connection: Connection) -> List[GlucoseReading]:
        body = self._session.get(f"{CONNECTIONS_ENDPOINT}/{connection.patient_id}/logbook")
        entries = body.get("data")
        if not isinstance(entries, list):
            raise MalformedResponse("Logbook response has no entry list.")
        target_range = connection.target_range or self.default_range
        return self._map_entries(entries, target_range, connection, "logbook")

    def _graph(self, connection: Connection) -> GraphPayload:
        body = self._session.get(f"{CONNECTIONS_ENDPOINT}/{connection.patient_id}/graph")
        data = body.get("data")
        if not isinstance(data, dict):
            data = body
        try:
            return GraphPayload.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid graph response: {exc}") from exc

    @staticmethod
    def _map_entries(
        entries: Iterable[Any],
        target_range: TargetRange,
        connection: Connection,
        source: str,
    ) -> List[GlucoseReading]:
        readings: List[GlucoseReading] = []
        for index, entry in enumerate(entries):
            try:
                readings.append(map_reading(entry, target_range))
            except ValueError as exc:
                logger.warning(
                    "Skipping %s entry %d",
                    source,
                    index,
                    extra={"patient_id": connection.patient_id, "reason": str(exc).partition("\n")[0]},
                )
        return readings
