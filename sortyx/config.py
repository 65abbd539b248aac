from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

SensorMode = Literal["store", "mock"]

DEFAULT_APPLICATION_ID = "sortyx-iot"


@dataclass(slots=True)
class ThresholdDefaults:
    fill_threshold: float = 80.0
    battery_threshold: float = 20.0
    temp_threshold: float = 50.0


@dataclass(slots=True)
class SafetyBands:
    air_quality_max: float = 150.0
    odour_max: float = 70.0
    humidity_max: float = 85.0
    critical_fill: float = 90.0


@dataclass(slots=True)
class AlertConfig:
    interval_seconds: int = 300
    auto_start_monitor: bool = True
    default_bin_height_cm: float = 100.0
    thresholds: ThresholdDefaults = field(default_factory=ThresholdDefaults)
    bands: SafetyBands = field(default_factory=SafetyBands)


@dataclass(slots=True)
class AuthConfig:
    jwt_secret: str = "change-me"
    algorithm: str = "HS256"
    token_expiry_hours: int = 24
    admin_email: str | None = "admin@sortyx.com"
    admin_password: str | None = "admin123"


@dataclass(slots=True)
class MockDevice:
    device_id: str
    application_id: str
    bin_height_cm: float = 100.0


@dataclass(slots=True)
class SensorRuntimeConfig:
    mode: SensorMode = "store"
    mock_devices: list[MockDevice] = field(default_factory=list)


@dataclass(slots=True)
class DeviceProfile:
    name: str | None = None
    location: str | None = None
    waste_types: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DeviceCatalog:
    profiles: dict[str, DeviceProfile] = field(default_factory=dict)
    default_waste_types: list[str] = field(default_factory=lambda: ["plastic", "paper", "glass", "general"])
    default_location: str = "IoT Network Location"


@dataclass(slots=True)
class DatabaseConfig:
    path: Path


@dataclass(slots=True)
class AppConfig:
    alerts: AlertConfig
    auth: AuthConfig
    sensors: SensorRuntimeConfig
    database: DatabaseConfig
    catalog: DeviceCatalog
    default_application_id: str = DEFAULT_APPLICATION_ID
    subscription_plans: list[dict[str, Any]] = field(default_factory=list)


class ConfigError(RuntimeError):
    pass


DEFAULT_PLANS: list[dict[str, Any]] = [
    {"name": "Free", "price": 0, "features": ["Up to 2 SmartBins", "Basic monitoring", "Email alerts"]},
    {
        "name": "Premium",
        "price": 29.99,
        "features": ["Unlimited SmartBins", "Real-time monitoring", "SMS & Email alerts", "Advanced analytics"],
    },
]


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping in {path}")
    return data


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{key}` must be a dictionary")
    return value


def _resolve_config_dir() -> Path:
    env_dir = os.getenv("SORTYX_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return (Path(__file__).resolve().parents[1] / "config").resolve()


def _parse_alerts(raw: dict[str, Any]) -> AlertConfig:
    thresholds_raw = _section(raw, "thresholds")
    bands_raw = _section(raw, "bands")
    return AlertConfig(
        interval_seconds=int(raw.get("interval_seconds", 300)),
        auto_start_monitor=bool(raw.get("auto_start_monitor", True)),
        default_bin_height_cm=float(raw.get("default_bin_height_cm", 100.0)),
        thresholds=ThresholdDefaults(
            fill_threshold=float(thresholds_raw.get("fill_threshold", 80)),
            battery_threshold=float(thresholds_raw.get("battery_threshold", 20)),
            temp_threshold=float(thresholds_raw.get("temp_threshold", 50)),
        ),
        bands=SafetyBands(
            air_quality_max=float(bands_raw.get("air_quality_max", 150)),
            odour_max=float(bands_raw.get("odour_max", 70)),
            humidity_max=float(bands_raw.get("humidity_max", 85)),
            critical_fill=float(bands_raw.get("critical_fill", 90)),
        ),
    )


def _parse_sensors(raw: dict[str, Any], default_application_id: str) -> SensorRuntimeConfig:
    mode_raw = str(raw.get("mode", "store")).strip().lower()
    if mode_raw not in {"store", "mock"}:
        raise ConfigError(f"Invalid sensors.mode `{mode_raw}`. Use store|mock.")

    devices_raw = raw.get("mock_devices", [])
    if not isinstance(devices_raw, list):
        raise ConfigError("sensors.mock_devices must be a list")

    devices: list[MockDevice] = []
    for item in devices_raw:
        devices.append(
            MockDevice(
                device_id=str(item["device_id"]),
                application_id=str(item.get("application_id", default_application_id)),
                bin_height_cm=float(item.get("bin_height_cm", 100.0)),
            )
        )
    return SensorRuntimeConfig(mode=mode_raw, mock_devices=devices)  # type: ignore[arg-type]


def _parse_catalog(raw: dict[str, Any]) -> DeviceCatalog:
    profiles: dict[str, DeviceProfile] = {}
    for device_id, item in _section(raw, "devices").items():
        item = item or {}
        profiles[str(device_id)] = DeviceProfile(
            name=item.get("name"),
            location=item.get("location"),
            waste_types=[str(value) for value in item.get("waste_types", [])],
        )

    catalog = DeviceCatalog(profiles=profiles)
    if raw.get("default_waste_types"):
        catalog.default_waste_types = [str(value) for value in raw["default_waste_types"]]
    if raw.get("default_location"):
        catalog.default_location = str(raw["default_location"])
    return catalog


def load_config(config_dir: Path | None = None) -> AppConfig:
    directory = config_dir or _resolve_config_dir()
    if not directory.exists():
        raise ConfigError(f"Config directory not found: {directory}")

    settings = _read_yaml(directory / "settings.yaml")
    devices_cfg = _read_yaml(directory / "devices.yaml")

    default_application_id = str(
        _section(settings, "tenancy").get("default_application_id", DEFAULT_APPLICATION_ID)
    )

    auth_raw = _section(settings, "auth")
    auth = AuthConfig(
        jwt_secret=os.getenv("SORTYX_JWT_SECRET") or str(auth_raw.get("jwt_secret", "change-me")),
        algorithm=str(auth_raw.get("algorithm", "HS256")),
        token_expiry_hours=int(auth_raw.get("token_expiry_hours", 24)),
        admin_email=auth_raw.get("admin_email", "admin@sortyx.com"),
        admin_password=auth_raw.get("admin_password", "admin123"),
    )

    db_path_raw = _section(settings, "database").get("path", "./data/sortyx.db")
    db_path = Path(db_path_raw)
    if not db_path.is_absolute():
        db_path = (Path(__file__).resolve().parents[1] / db_path).resolve()

    plans = settings.get("subscription_plans") or DEFAULT_PLANS
    if not isinstance(plans, list):
        raise ConfigError("subscription_plans must be a list")

    return AppConfig(
        alerts=_parse_alerts(_section(settings, "alerts")),
        auth=auth,
        sensors=_parse_sensors(_section(settings, "sensors"), default_application_id),
        database=DatabaseConfig(path=db_path),
        catalog=_parse_catalog(devices_cfg),
        default_application_id=default_application_id,
        subscription_plans=plans,
    )
