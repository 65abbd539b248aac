from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sortyx.config import SafetyBands
from sortyx.errors import EntityNotFoundError
from sortyx.models.database import DatabaseManager, utc_now_iso
from sortyx.models.repository import ALERTS
from sortyx.models.schemas import Alert

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Breach:
    alert_type: str
    severity: str
    current_value: float
    threshold: float
    unit: str
    message: str


@dataclass(slots=True)
class EvaluationResult:
    created: list[dict[str, Any]] = field(default_factory=list)
    updated: list[dict[str, Any]] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def alerts(self) -> list[dict[str, Any]]:
        return self.created + self.updated


def enabled_sensors(entity: dict[str, Any]) -> set[str]:
    raw = entity.get("sensors_enabled")
    if raw is None:
        return {"fill_level"}
    if isinstance(raw, dict):
        return {kind for kind, enabled in raw.items() if enabled}
    return {str(kind) for kind in raw}


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def check_thresholds(entity: dict[str, Any], *, name: str, bands: SafetyBands) -> list[Breach]:
    """Compare one entity's cached snapshot with its thresholds.

    Each sensor kind is checked on its own; severities are never combined.
    """
    sensors = enabled_sensors(entity)
    breaches: list[Breach] = []

    fill = _number(entity.get("current_fill"))
    fill_threshold = _number(entity.get("fill_threshold"))
    if "fill_level" in sensors and fill is not None and fill_threshold is not None and fill >= fill_threshold:
        breaches.append(
            Breach(
                alert_type="fill_level",
                severity="critical" if fill >= bands.critical_fill else "high",
                current_value=fill,
                threshold=fill_threshold,
                unit="%",
                message=f"{name} is {fill:.0f}% full (threshold {fill_threshold:.0f}%)",
            )
        )

    battery = _number(entity.get("battery_level"))
    battery_threshold = _number(entity.get("battery_threshold"))
    if (
        "battery_level" in sensors
        and battery is not None
        and battery_threshold is not None
        and battery <= battery_threshold
    ):
        breaches.append(
            Breach(
                alert_type="battery_level",
                severity="medium",
                current_value=battery,
                threshold=battery_threshold,
                unit="%",
                message=f"{name} sensor battery at {battery:.0f}% (threshold {battery_threshold:.0f}%)",
            )
        )

    temperature = _number(entity.get("temperature"))
    temp_threshold = _number(entity.get("temp_threshold"))
    if (
        "temperature" in sensors
        and temperature is not None
        and temp_threshold is not None
        and temperature >= temp_threshold
    ):
        breaches.append(
            Breach(
                alert_type="temperature",
                severity="critical",
                current_value=temperature,
                threshold=temp_threshold,
                unit="°C",
                message=f"{name} temperature {temperature:.1f}°C exceeds {temp_threshold:.1f}°C, possible fire hazard",
            )
        )

    air_quality = _number(entity.get("air_quality"))
    if "air_quality" in sensors and air_quality is not None and air_quality > bands.air_quality_max:
        breaches.append(
            Breach(
                alert_type="air_quality",
                severity="medium",
                current_value=air_quality,
                threshold=bands.air_quality_max,
                unit="AQI",
                message=f"{name} air quality index {air_quality:.0f} is unhealthy",
            )
        )

    odour = _number(entity.get("odour_level"))
    if "odour_detection" in sensors and odour is not None and odour > bands.odour_max:
        breaches.append(
            Breach(
                alert_type="odour",
                severity="medium",
                current_value=odour,
                threshold=bands.odour_max,
                unit="",
                message=f"{name} odour level {odour:.0f} above {bands.odour_max:.0f}",
            )
        )

    humidity = _number(entity.get("humidity"))
    if "humidity" in sensors and humidity is not None and humidity > bands.humidity_max:
        breaches.append(
            Breach(
                alert_type="humidity",
                severity="medium",
                current_value=humidity,
                threshold=bands.humidity_max,
                unit="%",
                message=f"{name} humidity {humidity:.0f}% above {bands.humidity_max:.0f}%",
            )
        )

    return breaches


def _alert_context(
    entity: dict[str, Any],
    *,
    bin_type: str,
    parent: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if bin_type == "compartment":
        parent_name = (parent or {}).get("name", "SmartBin")
        return {
            "entity_id": entity["id"],
            "bin_type": bin_type,
            "compartment_id": entity["id"],
            "smartbin_id": entity.get("smartbin_id"),
            "bin_name": f"{parent_name} / {entity.get('label') or entity.get('unique_id') or entity['id']}",
            "created_by": entity.get("created_by") or (parent or {}).get("created_by"),
        }
    return {
        "entity_id": entity["id"],
        "bin_type": bin_type,
        "bin_id": entity["id"],
        "bin_name": entity.get("name") or entity["id"],
        "created_by": entity.get("created_by"),
    }


def find_open_alert(db: DatabaseManager, entity_id: str, alert_type: str) -> dict[str, Any] | None:
    rows = db.query(
        ALERTS,
        {"entity_id": entity_id, "alert_type": alert_type, "acknowledged": False},
        order_by="created_at",
        descending=True,
        limit=1,
    )
    return rows[0] if rows else None


def upsert_alert(db: DatabaseManager, context: dict[str, Any], breach: Breach) -> tuple[str, dict[str, Any]] | None:
    existing = find_open_alert(db, context["entity_id"], breach.alert_type)
    if existing is None:
        alert = Alert(
            **context,
            alert_type=breach.alert_type,
            severity=breach.severity,  # type: ignore[arg-type]
            current_value=breach.current_value,
            threshold=breach.threshold,
            unit=breach.unit,
            message=breach.message,
            created_at=utc_now_iso(),
        )
        return "created", db.insert(ALERTS, alert.model_dump(mode="json"))

    unchanged = (
        existing.get("current_value") == breach.current_value
        and existing.get("threshold") == breach.threshold
        and existing.get("severity") == breach.severity
    )
    if unchanged:
        return None

    updated = db.update(
        ALERTS,
        existing["id"],
        {
            "current_value": breach.current_value,
            "threshold": breach.threshold,
            "severity": breach.severity,
            "message": breach.message,
            "updated_at": utc_now_iso(),
        },
    )
    return ("updated", updated) if updated else None


def _evaluate_entity(
    db: DatabaseManager,
    entity: dict[str, Any],
    result: EvaluationResult,
    *,
    bin_type: str,
    bands: SafetyBands,
    parent: dict[str, Any] | None = None,
) -> None:
    try:
        context = _alert_context(entity, bin_type=bin_type, parent=parent)
        for breach in check_thresholds(entity, name=context["bin_name"], bands=bands):
            outcome = upsert_alert(db, context, breach)
            if outcome is None:
                continue
            kind, alert = outcome
            (result.created if kind == "created" else result.updated).append(alert)
    except Exception as exc:
        LOGGER.exception("Alert evaluation failed for %s %s: %s", bin_type, entity.get("id"), exc)
        result.failed.append(str(entity.get("id")))


def evaluate_bins_for_alerts(
    db: DatabaseManager,
    bins: Iterable[dict[str, Any]],
    *,
    compartments: Iterable[dict[str, Any]] = (),
    bands: SafetyBands | None = None,
) -> EvaluationResult:
    """Evaluate bins and compartments, creating or refreshing alerts.

    Repeated runs over unchanged data create nothing: an open (unacknowledged)
    alert for the same entity and alert type absorbs the breach.
    """
    bands = bands or SafetyBands()
    result = EvaluationResult()

    bins_by_id: dict[str, dict[str, Any]] = {}
    for entity in bins:
        bin_type = entity.get("type") or "singlebin"
        bins_by_id[str(entity.get("id"))] = entity
        _evaluate_entity(db, entity, result, bin_type=bin_type, bands=bands)

    for compartment in compartments:
        parent = bins_by_id.get(str(compartment.get("smartbin_id")))
        _evaluate_entity(db, compartment, result, bin_type="compartment", bands=bands, parent=parent)

    if result.created or result.updated:
        LOGGER.info(
            "Alert evaluation: %d created, %d updated, %d failed",
            len(result.created),
            len(result.updated),
            len(result.failed),
        )
    return result


def acknowledge_alert(db: DatabaseManager, alert_id: str, *, acknowledged_by: str | None = None) -> dict[str, Any]:
    alert = db.update(
        ALERTS,
        alert_id,
        {"acknowledged": True, "acknowledged_at": utc_now_iso(), "acknowledged_by": acknowledged_by},
    )
    if alert is None:
        raise EntityNotFoundError(ALERTS, alert_id)
    return alert
