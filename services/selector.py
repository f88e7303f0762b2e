"""Pick the followed patient connection to read from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from models.records import Connection
from services.errors import ConnectionNotFound, NoConnections


@dataclass(frozen=True)
class ByName:
    """Exact, case-sensitive match on ``"<first name> <last name>"``."""

    name: str


@dataclass(frozen=True)
class ByFunction:
    """Caller-supplied picker returning a patient id (or connection id) or ``None``."""

    func: Callable[[Sequence[Connection]], Optional[str]]


@dataclass(frozen=True)
class Default:
    """First connection in service order."""


SelectionStrategy = Union[ByName, ByFunction, Default]


class ConnectionSelector:

    def __init__(self, strategy: Optional[SelectionStrategy] = None) -> None:
        self.strategy: SelectionStrategy = strategy or Default()

    def select(self, connections: Sequence[Connection]) -> Connection:
        if not connections:
            raise NoConnections()

        strategy = self.strategy
        if isinstance(strategy, ByName):
            for connection in connections:
                if connection.full_name == strategy.name:
                    return connection
            raise ConnectionNotFound(strategy.name)

        if isinstance(strategy, ByFunction):
            identifier = strategy.func(connections)
            if identifier is None:
                raise ConnectionNotFound(None)
            for connection in connections:
                if identifier in (connection.patient_id, connection.id):
                    return connection
            raise ConnectionNotFound(identifier)

        if isinstance(strategy, Default):
            return connections[0]

        raise TypeError(f"Unsupported selection strategy: {strategy!r}")
