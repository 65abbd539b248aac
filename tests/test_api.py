from pathlib import Path

from fastapi.testclient import TestClient


def _write_config(tmp_path: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)

    (config_dir / "settings.yaml").write_text(
        f"""
alerts:
  interval_seconds: 999
  auto_start_monitor: false
auth:
  jwt_secret: test-secret
  admin_email: admin@sortyx.com
  admin_password: admin123
sensors:
  mode: store
database:
  path: {str((tmp_path / "test.db").resolve())}
""".strip()
        + "\n",
        encoding="utf-8",
    )

    (config_dir / "devices.yaml").write_text(
        """
devices:
  lobby-sensor:
    name: Lobby Smart Bin
    location: Building A
""".strip()
        + "\n",
        encoding="utf-8",
    )

    return config_dir


def _client(monkeypatch, tmp_path: Path) -> TestClient:
    monkeypatch.setenv("SORTYX_CONFIG_DIR", str(_write_config(tmp_path)))
    from sortyx.main import app

    return TestClient(app)


def _login(client: TestClient, email: str = "admin@sortyx.com", password: str = "admin123") -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_health_endpoint(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


def test_auth_errors(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        bad = client.post("/auth/login", json={"email": "admin@sortyx.com", "password": "wrong"})
        assert bad.status_code == 401

        assert client.get("/api/smartbins").status_code == 401
        forged = client.get("/api/smartbins", headers={"Authorization": "Bearer not-a-token"})
        assert forged.status_code == 403


def test_register_and_update_profile(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        created = client.post(
            "/auth/register",
            json={"email": "Ops@Example.com", "password": "secret1", "full_name": "Ops"},
        )
        assert created.status_code == 201
        assert "password_hash" not in created.json()["user"]

        duplicate = client.post("/auth/register", json={"email": "ops@example.com", "password": "secret1"})
        assert duplicate.status_code == 400

        headers = _login(client, "ops@example.com", "secret1")
        updated = client.put("/auth/me", json={"applicationId": "tenant-x", "sms_alert_enabled": True}, headers=headers)
        assert updated.status_code == 200

        me = client.get("/auth/me", headers=headers).json()
        assert me["applicationId"] == "tenant-x"
        assert me["sms_alert_enabled"] is True
        assert me["full_name"] == "Ops"


def test_smartbin_crud_with_compartments(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        headers = _login(client)

        created = client.post("/api/smartbins", json={"name": "Bin A", "location": "Hall"}, headers=headers)
        assert created.status_code == 201
        smart_bin = created.json()
        assert smart_bin["created_by"] == "admin@sortyx.com"
        assert smart_bin["fill_threshold"] == 80

        for label in ("Cans", "Bottles"):
            response = client.post(
                "/api/compartments",
                json={"smartbin_id": smart_bin["id"], "label": label, "waste_type": "recyclable"},
                headers=headers,
            )
            assert response.status_code == 201

        listed = client.get("/api/compartments", params={"smartbin_id": smart_bin["id"]}, headers=headers).json()
        assert sorted(item["unique_id"] for item in listed) == ["BinA-REC-001", "BinA-REC-002"]

        conflict = client.post(
            "/api/compartments",
            json={"smartbin_id": smart_bin["id"], "label": "Dup", "unique_id": "BinA-REC-001"},
            headers=headers,
        )
        assert conflict.status_code == 409

        renamed = client.put(f"/api/smartbins/{smart_bin['id']}", json={"status": "maintenance"}, headers=headers)
        assert renamed.json()["status"] == "maintenance"

        detail = client.get(f"/api/smartbins/{smart_bin['id']}", headers=headers).json()
        assert len(detail["compartments"]) == 2

        deleted = client.delete(f"/api/smartbins/{smart_bin['id']}", headers=headers)
        assert deleted.json()["compartments_deleted"] == 2
        assert client.get(f"/api/smartbins/{smart_bin['id']}", headers=headers).status_code == 404
        assert client.get("/api/compartments", headers=headers).json() == []


def test_bins_are_scoped_to_owner(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        admin = _login(client)
        single = client.post("/api/singlebins", json={"name": "Private"}, headers=admin).json()

        client.post("/auth/register", json={"email": "other@example.com", "password": "secret1"})
        other = _login(client, "other@example.com", "secret1")

        assert client.get("/api/singlebins", headers=other).json() == []
        assert client.get(f"/api/singlebins/{single['id']}", headers=other).status_code == 404
        assert client.delete(f"/api/singlebins/{single['id']}", headers=other).status_code == 404
        assert client.delete(f"/api/singlebins/{single['id']}", headers=admin).status_code == 200


def test_alert_check_and_acknowledge(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        headers = _login(client)
        client.post("/api/singlebins", json={"name": "Dock", "device_id": "dock-sensor"}, headers=headers)
        ingest = client.post("/api/devices/dock-sensor/samples", json={"sensorData": {"distance": 20}})
        assert ingest.status_code == 201
        assert ingest.json()["fillLevel"] == 80

        first = client.post("/api/alerts/check", headers=headers).json()
        assert first["created"] == 1
        assert client.post("/api/alerts/check", headers=headers).json()["created"] == 0

        open_alerts = client.get("/api/alerts", params={"acknowledged": "false"}, headers=headers).json()
        assert len(open_alerts) == 1
        assert open_alerts[0]["alert_type"] == "fill_level"

        acked = client.post(f"/api/alerts/{open_alerts[0]['id']}/acknowledge", headers=headers)
        assert acked.status_code == 200
        assert acked.json()["acknowledged_by"] == "admin@sortyx.com"
        assert client.post("/api/alerts/missing/acknowledge", headers=headers).status_code == 404

        assert client.post("/api/alerts/check", headers=headers).json()["created"] == 1
        assert len(client.get("/api/alerts", headers=headers).json()) == 2

        overview = client.get("/api/stats/overview", headers=headers).json()
        assert overview["single_bins"] == 1
        assert overview["needs_collection"] == 1
        assert overview["open_alerts"] == 1


def test_device_registration_and_suggestion(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        headers = _login(client)
        assert client.post("/api/devices", json={"deviceId": "lobby-sensor"}, headers=headers).status_code == 201
        client.post("/api/devices", json={"deviceId": "far-away", "applicationId": "elsewhere"}, headers=headers)

        devices = client.get("/api/devices", headers=headers).json()
        assert [item["deviceId"] for item in devices] == ["lobby-sensor"]
        assert devices[0]["status"] == "offline"

        assert client.get("/api/devices/lobby-sensor/latest", headers=headers).status_code == 404
        client.post("/api/devices/lobby-sensor/samples", json={"distance": 30, "battery": 55})

        suggestion = client.get("/api/devices/lobby-sensor/suggestion", headers=headers).json()
        assert suggestion["name"] == "Lobby Smart Bin"
        assert suggestion["current_fill"] == 70
        assert client.get("/api/devices/unknown/suggestion", headers=headers).status_code == 404


def test_subscription_plans(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        plans = client.get("/api/subscription-plans").json()
        assert [plan["name"] for plan in plans] == ["Free", "Premium"]


def test_alert_websocket_receives_alert_and_snapshot(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        headers = _login(client)
        client.post("/api/singlebins", json={"name": "Gate", "device_id": "gate-sensor"}, headers=headers)
        client.post("/api/devices/gate-sensor/samples", json={"distance": 5})

        with client.websocket_connect("/ws/alerts") as websocket:
            greeting = websocket.receive_json()
            assert greeting == {"type": "connected", "clients": 1}

            assert client.post("/api/alerts/check", headers=headers).json()["created"] == 1

            alert = websocket.receive_json()
            assert alert["type"] == "alert"
            assert alert["data"]["alert_type"] == "fill_level"
            assert alert["data"]["severity"] == "critical"

            snapshot = websocket.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["data"][0]["current_fill"] == 95


def test_sample_with_epoch_timestamp_is_accepted(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        headers = _login(client)
        response = client.post("/api/devices/epoch-sensor/samples", json={"distance": 40, "timestamp": 1700000000})
        assert response.status_code == 201
        assert response.json()["timestamp"] == "2023-11-14T22:13:20+00:00"

        latest = client.get("/api/devices/epoch-sensor/latest", headers=headers)
        assert latest.status_code == 200
        assert latest.json()["fillLevel"] == 60
