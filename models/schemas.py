"""Pydantic schemas for the LibreLinkUp JSON bodies this client interprets."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class AuthTicket(BaseModel):
    token: str = Field(..., min_length=1)
    expires: int = Field(default=0, description="Unix seconds; 0 when unknown.")
    duration: int = 0


class LoginUser(BaseModel):
    id: str
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")


class LoginStep(BaseModel):
    """Extra step the service requires before issuing a token (terms, MFA)."""

    step_type: Optional[str] = Field(default=None, alias="type")
    component_name: str = Field(default="unknown", alias="componentName")


class LockoutInfo(BaseModel):
    failures: int = 0
    interval: int = 0
    lockout: int = 0


class LoginData(BaseModel):
    redirect: bool = False
    region: Optional[str] = None
    auth_ticket: Optional[AuthTicket] = Field(default=None, alias="authTicket")
    user: Optional[LoginUser] = None
    step: Optional[LoginStep] = None
    # Locked accounts nest the lockout details under a second "data" key.
    lockout: Optional[LockoutInfo] = Field(default=None, alias="data")


class LoginResponse(BaseModel):
    status: int = 0
    data: LoginData = Field(default_factory=LoginData)


class TargetRangePayload(BaseModel):
    low: float
    high: float


class ConnectionPayload(BaseModel):
    id: Optional[str] = None
    patient_id: Optional[str] = Field(default=None, alias="patientId")
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    target_low: Optional[float] = Field(default=None, alias="targetLow")
    target_high: Optional[float] = Field(default=None, alias="targetHigh")
    target_range: Optional[TargetRangePayload] = Field(default=None, alias="targetRange")
    sensor: Optional[Dict[str, Any]] = None


class ConnectionsResponse(BaseModel):
    status: int = 0
    data: List[Dict[str, Any]] = Field(default_factory=list)


class GraphPayload(BaseModel):
    connection: Dict[str, Any]
    active_sensors: List[Dict[str, Any]] = Field(default_factory=list, alias="activeSensors")
    # Entries stay untyped here so one bad point cannot reject the whole payload.
    graph_data: List[Any] = Field(default_factory=list, alias="graphData")


class GlucoseItem(BaseModel):
    """A single measurement as found in graph data, logbooks and connections."""

    value: float = Field(
        ...,
        allow_inf_nan=False,
        validation_alias=AliasChoices("ValueInMgPerDl", "Value", "value"),
    )
    trend_code: Any = Field(
        default=None, validation_alias=AliasChoices("TrendArrow", "trendCode", "trendArrow")
    )
    timestamp: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("FactoryTimestamp", "timestamp", "Timestamp"),
    )
