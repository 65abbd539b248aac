from __future__ import annotations

import logging
from typing import Any

from sortyx.config import DEFAULT_APPLICATION_ID, DeviceCatalog
from sortyx.models.database import DatabaseManager, utc_now_iso
from sortyx.models.schemas import SensorSample
from sortyx.sensors.readings import IOT_DEVICES, calculate_fill_level, get_latest_sensor_data, sensor_collection

LOGGER = logging.getLogger(__name__)


def resolve_application_id(user: dict[str, Any] | None, default: str = DEFAULT_APPLICATION_ID) -> str:
    if not user:
        return default
    for key in ("applicationId", "app_id", "appId"):
        if user.get(key):
            return str(user[key])
    return default


def register_device(
    db: DatabaseManager,
    device_id: str,
    *,
    application_id: str,
    name: str | None = None,
) -> dict[str, Any]:
    existing = db.get(IOT_DEVICES, device_id)
    changes = {
        "deviceId": device_id,
        "applicationId": application_id,
        "name": name or (existing or {}).get("name") or device_id,
        "collection": sensor_collection(device_id),
    }
    if existing:
        return db.update(IOT_DEVICES, device_id, changes) or existing
    return db.insert(IOT_DEVICES, {**changes, "lastSeen": None, "created_at": utc_now_iso()}, doc_id=device_id)


def list_available_devices(db: DatabaseManager, application_id: str) -> list[dict[str, Any]]:
    """List devices tagged with `application_id`, each marked online/offline.

    The tenant filter is plain string equality on `applicationId`.
    """
    try:
        devices = db.query(IOT_DEVICES, {"applicationId": application_id})
    except Exception as exc:
        LOGGER.warning("Device listing failed for application %s: %s", application_id, exc)
        return []

    if not devices:
        LOGGER.warning("No IoT devices found for application ID %s", application_id)

    for device in devices:
        try:
            sample = get_latest_sensor_data(db, device["deviceId"])
        except Exception as exc:
            LOGGER.warning("No data for device %s: %s", device.get("deviceId"), exc)
            sample = None

        if sample is None:
            device["status"] = "offline"
            device["sampleData"] = None
        else:
            device["status"] = "online"
            device["sampleData"] = sample.model_dump(mode="json", by_alias=True)
    return devices


def estimate_capacity(fill_level: int | None) -> int:
    if fill_level is None:
        return 100
    if fill_level > 80:
        return 150
    if fill_level < 20:
        return 75
    return 100


def suggest_bin_attributes(
    device_id: str,
    sample: SensorSample | None,
    catalog: DeviceCatalog,
    *,
    bin_height: float = 100.0,
) -> dict[str, Any]:
    profile = catalog.profiles.get(device_id)

    fill_level = None
    if sample is not None and sample.distance is not None:
        fill_level = calculate_fill_level(sample.distance, bin_height)

    if sample is not None:
        description = (
            "Connected IoT device with live sensor monitoring. Current status: "
            f"Battery {sample.battery}%, Fill Level {fill_level}%, Distance {sample.distance}cm"
        )
    else:
        description = "IoT-enabled smart bin with sensor monitoring capabilities"

    sensors_enabled = {"fill_level": True}
    if sample is not None:
        sensors_enabled = {
            "fill_level": sample.distance is not None,
            "battery_level": sample.battery is not None,
            "temperature": sample.temperature is not None,
            "humidity": sample.humidity is not None,
            "air_quality": sample.air_quality is not None,
            "odour_detection": sample.odour_level is not None,
        }

    return {
        "device_id": device_id,
        "name": (profile.name if profile and profile.name else f"Smart Bin - {device_id}"),
        "location": (profile.location if profile and profile.location else catalog.default_location),
        "waste_types": list(profile.waste_types) if profile and profile.waste_types else list(catalog.default_waste_types),
        "capacity": estimate_capacity(fill_level),
        "bin_height": bin_height,
        "current_fill": fill_level,
        "sensors_enabled": sensors_enabled,
        "description": description,
        "matched": profile is not None,
    }
