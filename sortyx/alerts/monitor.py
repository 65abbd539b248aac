from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from sortyx.alerts.evaluator import EvaluationResult, enabled_sensors, evaluate_bins_for_alerts
from sortyx.config import AppConfig
from sortyx.models.database import DatabaseManager, utc_now_iso
from sortyx.models.repository import BinRepository, EntityRepository
from sortyx.sensors.readings import calculate_fill_level, get_latest_sensor_data
from sortyx.sensors.simulator import MockSensorFeed

LOGGER = logging.getLogger(__name__)

Publisher = Callable[[Any], Any]

# snapshot field -> (sensor kind that gates it, sample attribute)
_SNAPSHOT_SOURCES: dict[str, tuple[str, str]] = {
    "battery_level": ("battery_level", "battery"),
    "temperature": ("temperature", "temperature"),
    "humidity": ("humidity", "humidity"),
    "air_quality": ("air_quality", "air_quality"),
    "odour_level": ("odour_detection", "odour_level"),
}


def _sync_entity(
    db: DatabaseManager,
    repo: EntityRepository,
    entity: dict[str, Any],
    *,
    bin_height: float,
) -> dict[str, Any] | None:
    sample = get_latest_sensor_data(db, entity["device_id"])
    if sample is None:
        return None

    sensors = enabled_sensors(entity)
    changes: dict[str, Any] = {"last_sensor_update": sample.timestamp or utc_now_iso()}
    if "fill_level" in sensors and sample.distance is not None:
        changes["current_fill"] = calculate_fill_level(sample.distance, bin_height)
    for field_name, (kind, attribute) in _SNAPSHOT_SOURCES.items():
        value = getattr(sample, attribute)
        if kind in sensors and value is not None:
            changes[field_name] = value
    return repo.update(entity["id"], changes)


def sync_sensor_snapshots(db: DatabaseManager, bins: BinRepository, *, default_bin_height: float = 100.0) -> list[dict[str, Any]]:
    """Copy the latest device sample into each bin/compartment's cached snapshot."""
    updated: list[dict[str, Any]] = []
    smart_bins = {item["id"]: item for item in bins.smart_bins.list()}

    targets: list[tuple[EntityRepository, dict[str, Any], float]] = []
    for item in smart_bins.values():
        targets.append((bins.smart_bins, item, item.get("bin_height") or default_bin_height))
    for item in bins.single_bins.list():
        targets.append((bins.single_bins, item, item.get("bin_height") or default_bin_height))
    for item in bins.compartments.list():
        parent = smart_bins.get(item.get("smartbin_id"), {})
        height = item.get("bin_height") or parent.get("bin_height") or default_bin_height
        targets.append((bins.compartments, item, height))

    for repo, entity, height in targets:
        if not entity.get("device_id"):
            continue
        try:
            document = _sync_entity(db, repo, entity, bin_height=float(height))
        except Exception as exc:
            LOGGER.exception("Snapshot sync failed for %s %s: %s", repo.collection, entity.get("id"), exc)
            continue
        if document is not None:
            updated.append(document)
    return updated


class AlertMonitor:
    def __init__(
        self,
        config: AppConfig,
        db: DatabaseManager,
        *,
        on_alert: Publisher | None = None,
        on_snapshot: Publisher | None = None,
    ) -> None:
        self.config = config
        self.db = db
        self.bins = BinRepository(db, config.alerts.thresholds)
        self.on_alert = on_alert
        self.on_snapshot = on_snapshot
        self.last_result: EvaluationResult | None = None
        self.last_run_at: str | None = None
        self._running = False
        self._lock = asyncio.Lock()
        self._feed = MockSensorFeed(db, config.sensors.mock_devices) if config.sensors.mode == "mock" else None

    async def _emit(self, callback: Publisher | None, payload: Any) -> None:
        if callback is None:
            return
        maybe_awaitable = callback(payload)
        if asyncio.iscoroutine(maybe_awaitable):
            await maybe_awaitable

    async def run_once(self) -> EvaluationResult:
        async with self._lock:
            if self._feed is not None:
                self._feed.tick()

            snapshots = sync_sensor_snapshots(
                self.db,
                self.bins,
                default_bin_height=self.config.alerts.default_bin_height_cm,
            )
            result = evaluate_bins_for_alerts(
                self.db,
                self.bins.smart_bins.list() + self.bins.single_bins.list(),
                compartments=self.bins.compartments.list(),
                bands=self.config.alerts.bands,
            )
            self.last_result = result
            self.last_run_at = utc_now_iso()

        for alert in result.created:
            await self._emit(self.on_alert, alert)
        if snapshots:
            await self._emit(self.on_snapshot, snapshots)
        return result

    async def trigger_now(self) -> EvaluationResult:
        LOGGER.info("Manual alert check requested")
        return await self.run_once()

    async def run_forever(self) -> None:
        self._running = True
        LOGGER.info("Alert monitor started, interval %ds", self.config.alerts.interval_seconds)

        while self._running:
            try:
                await self.run_once()
            except Exception as exc:
                LOGGER.exception("Alert monitor cycle failed: %s", exc)
            await asyncio.sleep(self.config.alerts.interval_seconds)

    async def stop(self) -> None:
        self._running = False
