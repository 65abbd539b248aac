from pathlib import Path

import pytest

from sortyx.alerts.evaluator import acknowledge_alert, check_thresholds, evaluate_bins_for_alerts
from sortyx.config import SafetyBands
from sortyx.errors import EntityNotFoundError
from sortyx.models.database import DatabaseManager
from sortyx.models.repository import ALERTS, BinRepository


def _setup(tmp_path: Path) -> tuple[DatabaseManager, BinRepository]:
    db = DatabaseManager(tmp_path / "alerts.db")
    db.initialize()
    return db, BinRepository(db)


def test_fill_breach_raises_one_alert_per_open_window(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    single = repo.create_single_bin({"name": "Lobby", "current_fill": 80}, owner="ops@example.com")

    first = evaluate_bins_for_alerts(db, [single])
    assert len(first.created) == 1
    alert = first.created[0]
    assert alert["alert_type"] == "fill_level"
    assert alert["severity"] == "high"
    assert alert["bin_type"] == "singlebin"
    assert alert["created_by"] == "ops@example.com"

    second = evaluate_bins_for_alerts(db, [single])
    assert second.created == []
    assert second.updated == []
    assert db.count(ALERTS) == 1


def test_acknowledged_alert_allows_a_new_one(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    single = repo.create_single_bin({"name": "Lobby", "current_fill": 85}, owner="ops@example.com")

    created = evaluate_bins_for_alerts(db, [single]).created[0]
    acknowledged = acknowledge_alert(db, created["id"], acknowledged_by="ops@example.com")
    assert acknowledged["acknowledged"] is True
    assert acknowledged["acknowledged_at"] is not None

    again = evaluate_bins_for_alerts(db, [single])
    assert len(again.created) == 1
    assert again.created[0]["id"] != created["id"]
    assert db.count(ALERTS, {"acknowledged": False}) == 1


def test_changed_value_updates_open_alert(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    single = repo.create_single_bin({"name": "Lobby", "current_fill": 82}, owner="ops@example.com")
    evaluate_bins_for_alerts(db, [single])

    single = repo.single_bins.update(single["id"], {"current_fill": 95})
    result = evaluate_bins_for_alerts(db, [single])

    assert result.created == []
    assert len(result.updated) == 1
    assert result.updated[0]["severity"] == "critical"
    assert result.updated[0]["current_value"] == 95
    assert db.count(ALERTS) == 1


def test_below_threshold_creates_nothing(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    single = repo.create_single_bin({"name": "Lobby", "current_fill": 79}, owner="ops@example.com")
    assert evaluate_bins_for_alerts(db, [single]).created == []


def test_compartment_alert_names_parent(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    smart_bin = repo.create_smart_bin({"name": "Atrium"}, owner="ops@example.com")
    compartment = repo.create_compartment(
        {"smartbin_id": smart_bin["id"], "label": "Paper", "waste_type": "paper", "current_fill": 91}
    )

    result = evaluate_bins_for_alerts(db, [smart_bin], compartments=[compartment])

    assert len(result.created) == 1
    alert = result.created[0]
    assert alert["bin_type"] == "compartment"
    assert alert["compartment_id"] == compartment["id"]
    assert alert["smartbin_id"] == smart_bin["id"]
    assert alert["bin_name"] == "Atrium / Paper"
    assert alert["severity"] == "critical"


def test_failing_entity_does_not_stop_the_run(tmp_path: Path) -> None:
    db, repo = _setup(tmp_path)
    good = repo.create_single_bin({"name": "Good", "current_fill": 99}, owner="ops@example.com")
    broken = {"name": "Broken", "current_fill": 99, "fill_threshold": 80}

    result = evaluate_bins_for_alerts(db, [broken, good])

    assert len(result.failed) == 1
    assert len(result.created) == 1
    assert result.created[0]["entity_id"] == good["id"]


def test_sensor_checks_respect_enabled_sensors() -> None:
    entity = {
        "current_fill": 10,
        "fill_threshold": 80,
        "battery_level": 12,
        "battery_threshold": 20,
        "temperature": 61,
        "temp_threshold": 50,
        "air_quality": 180,
        "odour_level": 75,
        "humidity": 90,
        "sensors_enabled": {"fill_level": True, "battery_level": True, "temperature": True},
    }
    breaches = {item.alert_type: item for item in check_thresholds(entity, name="Bin", bands=SafetyBands())}

    assert set(breaches) == {"battery_level", "temperature"}
    assert breaches["battery_level"].severity == "medium"
    assert breaches["temperature"].severity == "critical"


def test_environment_bands() -> None:
    entity = {
        "air_quality": 151,
        "odour_level": 70,
        "humidity": 86,
        "sensors_enabled": {"air_quality": True, "odour_detection": True, "humidity": True},
    }
    breaches = {item.alert_type for item in check_thresholds(entity, name="Bin", bands=SafetyBands())}
    assert breaches == {"air_quality", "humidity"}


def test_acknowledge_unknown_alert(tmp_path: Path) -> None:
    db, _ = _setup(tmp_path)
    with pytest.raises(EntityNotFoundError):
        acknowledge_alert(db, "does-not-exist")
