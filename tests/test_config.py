from pathlib import Path

import pytest

from sortyx.config import ConfigError, load_config


def test_defaults_when_files_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    assert config.alerts.interval_seconds == 300
    assert config.alerts.thresholds.fill_threshold == 80
    assert config.sensors.mode == "store"
    assert config.default_application_id == "sortyx-iot"
    assert [plan["name"] for plan in config.subscription_plans] == ["Free", "Premium"]


def test_invalid_sensor_mode(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("sensors:\n  mode: serial\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_jwt_secret_env_override(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SORTYX_JWT_SECRET", "from-env")
    assert load_config(tmp_path).auth.jwt_secret == "from-env"


def test_mock_devices_inherit_tenant(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        "tenancy:\n  default_application_id: campus\nsensors:\n  mode: mock\n  mock_devices:\n    - device_id: d1\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.sensors.mock_devices[0].application_id == "campus"
