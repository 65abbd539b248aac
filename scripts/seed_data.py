#!/usr/bin/env python3
from __future__ import annotations

import argparse
import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sortyx.api.auth import ensure_admin_user
from sortyx.config import load_config
from sortyx.models.database import DatabaseManager
from sortyx.models.repository import BinRepository
from sortyx.sensors.devices import register_device
from sortyx.sensors.readings import sensor_collection

DEMO_SMART_BINS: list[dict] = [
    {
        "name": "Main Entrance",
        "location": "Building A - Main Entrance",
        "device_id": "sortyx-sensor-two",
        "compartments": [("Recycling", "recyclable"), ("Organic", "organic"), ("General", "general")],
    },
    {
        "name": "Cafeteria",
        "location": "Building B - Cafeteria Area",
        "device_id": "plaese-work",
        "bin_height": 120,
        "compartments": [("Food Waste", "organic"), ("Plastics", "plastic"), ("Paper", "paper")],
    },
]

DEMO_SINGLE_BINS: list[dict] = [
    {"name": "Office Floor 3", "location": "Building C - Office Floor", "device_id": "sortyx-sensor-one"},
    {"name": "Parking Lot", "location": "Outdoor - Parking", "waste_type": "general"},
]


def seed_samples(db: DatabaseManager, device_id: str, *, bin_height: float, hours: int, rng: random.Random) -> int:
    start = datetime.now(tz=UTC) - timedelta(hours=hours)
    fullness = rng.uniform(5.0, 30.0)
    written = 0
    for step in range(hours * 4):
        fullness = min(98.0, fullness + rng.uniform(0.0, 1.5))
        if fullness > 90 and rng.random() < 0.1:
            fullness = rng.uniform(2.0, 10.0)
        distance = bin_height - (fullness / 100.0) * bin_height
        received_at = (start + timedelta(minutes=15 * step)).isoformat()
        db.insert(
            sensor_collection(device_id),
            {
                "deviceId": device_id,
                "receivedAt": received_at,
                "timestamp": received_at,
                "sensorData": {
                    "distance": round(max(distance, 0.0), 2),
                    "battery": round(100 - step * 0.05, 1),
                    "temperature": round(rng.uniform(18.0, 30.0), 1),
                    "humidity": round(rng.uniform(35.0, 75.0), 1),
                    "tilt": "normal",
                },
            },
        )
        written += 1
    return written


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo bins, compartments and sensor history")
    parser.add_argument("--owner", default=None, help="Email that owns the seeded bins (default: admin)")
    parser.add_argument("--hours", type=int, default=24, help="Hours of sensor history per device")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    config = load_config()
    db = DatabaseManager(config.database.path)
    db.initialize()
    ensure_admin_user(db, config.auth)

    owner = args.owner or config.auth.admin_email or "admin@sortyx.com"
    rng = random.Random(args.seed)
    repo = BinRepository(db, config.alerts.thresholds)
    height_default = config.alerts.default_bin_height_cm

    samples = 0
    for template in DEMO_SMART_BINS:
        data = {key: value for key, value in template.items() if key != "compartments"}
        data["sensors_enabled"] = {"fill_level": True, "battery_level": True, "temperature": True}
        smart_bin = repo.create_smart_bin(data, owner=owner)
        for label, waste_type in template["compartments"]:
            repo.create_compartment({"smartbin_id": smart_bin["id"], "label": label, "waste_type": waste_type})
        register_device(db, template["device_id"], application_id=config.default_application_id, name=template["name"])
        samples += seed_samples(
            db, template["device_id"], bin_height=template.get("bin_height", height_default), hours=args.hours, rng=rng
        )

    for template in DEMO_SINGLE_BINS:
        repo.create_single_bin(dict(template), owner=owner)
        if template.get("device_id"):
            register_device(db, template["device_id"], application_id=config.default_application_id, name=template["name"])
            samples += seed_samples(db, template["device_id"], bin_height=height_default, hours=args.hours, rng=rng)

    db.close()
    print(
        f"Seeded {len(DEMO_SMART_BINS)} smart bins, {len(DEMO_SINGLE_BINS)} single bins "
        f"and {samples} sensor samples for {owner}."
    )


if __name__ == "__main__":
    main()
