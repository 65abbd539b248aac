from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any

from sortyx.models.database import DatabaseManager, utc_now_iso
from sortyx.models.schemas import SensorSample

LOGGER = logging.getLogger(__name__)

ALL_SENSOR_DATA = "all-sensor-data"
IOT_DEVICES = "iot-devices"
FALLBACK_SCAN_LIMIT = 50
# larger epoch values are milliseconds
EPOCH_MILLIS_CUTOFF = 100_000_000_000

_ALIASES: dict[str, tuple[str, ...]] = {
    "distance": ("distance", "dist"),
    "battery": ("battery", "bat"),
    "temperature": ("temperature", "temp"),
    "humidity": ("humidity", "hum"),
    "air_quality": ("airQuality", "air_quality", "aqi"),
    "odour_level": ("odourLevel", "odour_level", "odour"),
    "tilt": ("tilt", "t"),
}


def sensor_collection(device_id: str) -> str:
    return f"sensor-data-{device_id}"


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def calculate_fill_level(distance: Any, bin_height: Any) -> int:
    """Convert an ultrasonic distance reading into a 0-100 fill percentage.

    Missing, negative or non-finite input degrades to 0 (an empty bin) instead of raising.
    """
    distance_cm = _as_number(distance)
    height_cm = _as_number(bin_height)
    # distance 0 means waste touches the sensor: full, not missing
    if distance_cm is None or height_cm is None or distance_cm < 0 or height_cm <= 0:
        return 0

    fill = ((height_cm - distance_cm) / height_cm) * 100
    if math.isnan(fill):
        return 0
    return int(max(0, min(100, round(fill))))


def _pick(payload: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return None


def _as_timestamp(value: Any) -> str | None:
    """ISO string for a device timestamp; epoch seconds or milliseconds are converted."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > EPOCH_MILLIS_CUTOFF else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC).isoformat()
        except (OverflowError, OSError, ValueError):
            return str(value)
    return str(value)


def _ttn_device_id(document: dict[str, Any]) -> str | None:
    ids = document.get("end_device_ids")
    if isinstance(ids, dict) and ids.get("device_id"):
        return str(ids["device_id"])
    return None


def normalize_sensor_payload(raw: dict[str, Any] | None, *, bin_height: float = 100.0) -> SensorSample | None:
    if not raw:
        return None

    payload = raw
    if isinstance(raw.get("sensorData"), dict):
        payload = raw["sensorData"]
    decoded = (raw.get("uplink_message") or {}).get("decoded_payload")
    if isinstance(decoded, dict):
        payload = decoded

    values = {field: _pick(payload, names) for field, names in _ALIASES.items()}

    # labels such as "normal" or "tilted" read as level
    tilt = _as_number(values["tilt"])
    if values["tilt"] is not None and tilt is None:
        tilt = 0.0

    distance = _as_number(values["distance"])
    device_id = raw.get("deviceId") or raw.get("device_id") or _ttn_device_id(raw) or "unknown"
    received_at = _as_timestamp(raw.get("receivedAt"))
    return SensorSample(
        device_id=str(device_id),
        distance=distance,
        battery=_as_number(values["battery"]),
        temperature=_as_number(values["temperature"]),
        humidity=_as_number(values["humidity"]),
        air_quality=_as_number(values["air_quality"]),
        odour_level=_as_number(values["odour_level"]),
        tilt=tilt,
        fill_level=calculate_fill_level(distance, bin_height),
        timestamp=(
            _as_timestamp(raw.get("timestamp"))
            or received_at
            or _as_timestamp(raw.get("received_at"))
            or utc_now_iso()
        ),
        received_at=received_at,
    )


def _matches_device(document: dict[str, Any], device_id: str) -> bool:
    if device_id in (document.get("deviceId"), document.get("device_id"), _ttn_device_id(document)):
        return True
    return device_id in str(document.get("id", ""))


def get_latest_sensor_data(db: DatabaseManager, device_id: str) -> SensorSample | None:
    try:
        latest = db.latest(sensor_collection(device_id), order_by="receivedAt")
        if latest:
            return normalize_sensor_payload(latest)

        recent = db.query(ALL_SENSOR_DATA, order_by="receivedAt", descending=True, limit=FALLBACK_SCAN_LIMIT)
        for document in recent:
            if _matches_device(document, device_id):
                return normalize_sensor_payload(document)
    except Exception as exc:
        LOGGER.warning("Sensor fetch failed for %s: %s", device_id, exc)
        return None

    LOGGER.debug("No sensor data found for device %s", device_id)
    return None


def record_sensor_sample(db: DatabaseManager, device_id: str, payload: dict[str, Any]) -> SensorSample:
    """Normalize, then store the raw payload and mark the device as seen.

    Normalizing first keeps a payload that cannot be read out of the stream.
    """
    received_at = utc_now_iso()
    document = {**payload, "deviceId": device_id, "receivedAt": received_at}
    document.pop("id", None)
    sample = normalize_sensor_payload(document)
    if sample is None:
        raise ValueError(f"Empty sensor payload for {device_id}")

    db.insert(sensor_collection(device_id), document)
    if db.get(IOT_DEVICES, device_id):
        db.update(IOT_DEVICES, device_id, {"lastSeen": received_at})
    return sample
