from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

BinStatusLiteral = Literal["active", "inactive", "maintenance"]
BinTypeLiteral = Literal["smartbin", "singlebin", "compartment"]
SeverityLiteral = Literal["critical", "high", "medium", "info"]


def _default_sensors() -> dict[str, bool]:
    return {"fill_level": True}


class SensorSample(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(default="unknown", alias="deviceId")
    distance: float | None = None
    battery: float | None = None
    temperature: float | None = None
    humidity: float | None = None
    air_quality: float | None = Field(default=None, alias="airQuality")
    odour_level: float | None = Field(default=None, alias="odourLevel")
    tilt: float | None = None
    fill_level: int | None = Field(default=None, alias="fillLevel")
    timestamp: str | None = None
    received_at: str | None = Field(default=None, alias="receivedAt")


class BinFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    location: str = ""
    capacity: float = 100.0
    bin_height: float | None = None
    status: BinStatusLiteral = "active"
    description: str | None = None
    device_id: str | None = None
    sensors_enabled: dict[str, bool] = Field(default_factory=_default_sensors)
    fill_threshold: float | None = None
    battery_threshold: float | None = None
    temp_threshold: float | None = None


class SmartBinCreate(BinFields):
    pass


class SingleBinCreate(BinFields):
    waste_type: str = "general"


class CompartmentCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    smartbin_id: str
    label: str
    waste_type: str = "general"
    unique_id: str | None = None
    capacity: float = 50.0
    bin_height: float | None = None
    device_id: str | None = None
    sensors_enabled: dict[str, bool] = Field(default_factory=_default_sensors)
    fill_threshold: float | None = None
    battery_threshold: float | None = None
    temp_threshold: float | None = None


class EntityUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    label: str | None = None
    location: str | None = None
    capacity: float | None = None
    bin_height: float | None = None
    status: BinStatusLiteral | None = None
    description: str | None = None
    waste_type: str | None = None
    device_id: str | None = None
    sensors_enabled: dict[str, bool] | None = None
    fill_threshold: float | None = None
    battery_threshold: float | None = None
    temp_threshold: float | None = None


class Alert(BaseModel):
    entity_id: str
    bin_type: BinTypeLiteral
    bin_id: str | None = None
    compartment_id: str | None = None
    smartbin_id: str | None = None
    bin_name: str
    alert_type: str
    severity: SeverityLiteral
    current_value: float
    threshold: float
    unit: str
    message: str
    acknowledged: bool = False
    created_by: str | None = None
    created_at: str
    updated_at: str | None = None
    acknowledged_at: str | None = None
    acknowledged_by: str | None = None


class EvaluationReport(BaseModel):
    created: int
    updated: int
    failed: list[str] = Field(default_factory=list)
    alerts: list[dict[str, Any]] = Field(default_factory=list)


class DeviceCreate(BaseModel):
    device_id: str = Field(alias="deviceId")
    application_id: str | None = Field(default=None, alias="applicationId")
    name: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    full_name: str | None = None


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    full_name: str | None = None
    application_id: str | None = Field(default=None, alias="applicationId")
    email_alert_enabled: bool | None = None
    sms_alert_enabled: bool | None = None
    whatsapp_alert_enabled: bool | None = None
    alert_email: str | None = None
    alert_phone: str | None = None
    smartbin_order: list[str] | None = None


class TokenResponse(BaseModel):
    token: str
    user: dict[str, Any]
