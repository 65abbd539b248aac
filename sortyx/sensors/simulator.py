from __future__ import annotations

import logging
import random
from typing import Any

from sortyx.config import MockDevice
from sortyx.models.database import DatabaseManager
from sortyx.sensors.devices import register_device
from sortyx.sensors.readings import IOT_DEVICES, record_sensor_sample

LOGGER = logging.getLogger(__name__)


class MockSensorDevice:
    """Deterministic fake LoRa bin sensor: fills slowly, gets emptied now and then."""

    def __init__(self, device: MockDevice):
        self.device = device
        self._rng = random.Random(device.device_id)
        self._fullness = self._rng.uniform(5.0, 55.0)
        self._battery = self._rng.uniform(70.0, 100.0)
        self._ticks = 0

    def next_payload(self) -> dict[str, Any]:
        self._ticks += 1

        if self._ticks % self._rng.randint(140, 220) == 0:
            self._fullness = self._rng.uniform(2.0, 15.0)
        else:
            self._fullness = min(99.0, self._fullness + self._rng.uniform(0.1, 1.8))
        self._battery = max(0.0, self._battery - self._rng.uniform(0.0, 0.05))

        noise = self._rng.uniform(-0.8, 0.8)
        trash_height = (self._fullness / 100.0) * self.device.bin_height_cm
        distance = max(0.0, self.device.bin_height_cm - trash_height + noise)

        return {
            "sensorData": {
                "distance": round(distance, 2),
                "battery": round(self._battery, 1),
                "temperature": round(self._rng.uniform(18.0, 28.0), 1),
                "humidity": round(self._rng.uniform(40.0, 70.0), 1),
                "tilt": "normal",
            }
        }


class MockSensorFeed:
    def __init__(self, db: DatabaseManager, devices: list[MockDevice]):
        self.db = db
        self._devices = [MockSensorDevice(item) for item in devices]
        for item in devices:
            if not db.get(IOT_DEVICES, item.device_id):
                register_device(db, item.device_id, application_id=item.application_id)

    def tick(self) -> int:
        written = 0
        for device in self._devices:
            try:
                record_sensor_sample(self.db, device.device.device_id, device.next_payload())
                written += 1
            except Exception as exc:  # pragma: no cover
                LOGGER.exception("Mock sample failed for %s: %s", device.device.device_id, exc)
        return written
