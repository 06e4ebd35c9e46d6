from __future__ import annotations

import json
from unittest.mock import Mock

import pytest

from thermostat import create_app
from thermostat.config import AppConfig
from thermostat.services.container import ServiceContainer


@pytest.fixture()
def container(tmp_path):
    config = AppConfig(
        hardware_mode="simulated",
        enable_mqtt=False,
        autostart=False,
        check_interval_s=3600.0,
        settings_path=str(tmp_path / "settings.json"),
        log_dir=str(tmp_path / "logs"),
    )
    container = ServiceContainer.build(config)
    yield container
    container.shutdown()


@pytest.fixture()
def app(container):
    app = create_app(container=container)
    app.config["TESTING"] = True
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


def _data(response) -> dict:
    payload = response.get_json() or {}
    return payload.get("data") or {}


def test_state_snapshot(client):
    response = client.get("/api/thermostat/state")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    data = payload["data"]
    assert data["isRunning"] is False
    assert data["targetTemperature"] == 22.0
    assert data["status"] == "stopped"
    assert data["mode"] == "off"


def test_config_endpoint(client):
    data = _data(client.get("/api/thermostat/config"))

    assert data["hysteresis"] == 1.5
    assert data["checkIntervalMs"] == 3600000


def test_start_and_stop(client, container):
    response = client.post("/api/thermostat/start", json={"targetTemperature": 21, "hysteresis": 1})

    assert response.status_code == 200
    data = _data(response)
    assert data["isRunning"] is True
    assert data["targetTemperature"] == 21.0
    assert data["mode"] == "heat"

    response = client.post("/api/thermostat/stop")
    assert response.status_code == 200
    assert _data(response)["isRunning"] is False
    assert container.hardware.relay.get_state() is False


def test_start_without_body(client):
    response = client.post("/api/thermostat/start")

    assert response.status_code == 200
    assert _data(response)["isRunning"] is True


def test_start_rejects_out_of_range_target(client, container):
    response = client.post("/api/thermostat/start", json={"targetTemperature": 50})

    assert response.status_code == 400
    assert response.get_json()["ok"] is False
    assert container.control_loop.is_running is False


@pytest.mark.parametrize("body", [{"temperature": 40}, {"temperature": 4}, {"temperature": "22"}, {}])
def test_set_target_validation(client, body):
    response = client.put("/api/thermostat/target", json=body)

    assert response.status_code == 400
    assert _data(client.get("/api/thermostat/state"))["targetTemperature"] == 22.0


def test_set_target_persists(client, container):
    response = client.put("/api/thermostat/target", json={"temperature": 23.5})

    assert response.status_code == 200
    assert _data(response) == {"targetTemperature": 23.5}
    with open(container.config.settings_path, encoding="utf-8") as fh:
        assert json.load(fh)["targetTemperature"]["value"] == 23.5


def test_set_hysteresis(client):
    assert client.put("/api/thermostat/hysteresis", json={"hysteresis": 0}).status_code == 400
    assert client.put("/api/thermostat/hysteresis", json={"hysteresis": 5.5}).status_code == 400

    response = client.put("/api/thermostat/hysteresis", json={"hysteresis": 0.5})
    assert response.status_code == 200
    assert _data(response) == {"hysteresis": 0.5}


def test_reset(client):
    client.post("/api/thermostat/start")

    response = client.post("/api/thermostat/reset")

    assert response.status_code == 200
    data = _data(response)
    assert data["isRunning"] is True
    assert data["consecutiveErrors"] == 0


def test_temperature_is_cached(client):
    first = _data(client.get("/api/thermostat/temperature"))
    second = _data(client.get("/api/thermostat/temperature"))

    assert first["cached"] is False
    assert second["cached"] is True
    assert second["temperature"] == first["temperature"]


def test_temperature_sensor_failure_maps_to_503(client, container):
    container.hardware.sensor.fail_next = 1
    container.temperature_cache.invalidate()

    response = client.get("/api/thermostat/temperature")

    assert response.status_code == 503
    assert response.get_json()["ok"] is False


def test_health(client):
    data = _data(client.get("/api/thermostat/health"))

    assert data["status"] == "healthy"
    assert data["simulatedHardware"] is True
    assert data["mqtt"] is None
    assert data["controlLoop"]["status"] == "stopped"


def test_mqtt_endpoints_without_bridge(client):
    assert _data(client.get("/api/mqtt/status")) == {"configured": False, "connection": None}
    assert client.post("/api/mqtt/restart").status_code == 409


def test_mutations_republish_over_mqtt(client, container):
    bridge = Mock()
    container.mqtt_bridge = bridge

    client.put("/api/thermostat/target", json={"temperature": 24})
    bridge.publish_setpoint.assert_called_once()

    client.post("/api/thermostat/start")
    bridge.publish_mode.assert_called()

    container.mqtt_bridge = None


def test_mqtt_restart_failure_maps_to_502(client, container):
    bridge = Mock()
    bridge.restart.return_value = False
    container.mqtt_bridge = bridge

    response = client.post("/api/mqtt/restart")

    assert response.status_code == 502
    container.mqtt_bridge = None


def test_health_degraded_when_bridge_unhealthy(client, container):
    bridge = Mock()
    bridge.is_healthy.return_value = False
    bridge.get_status.return_value = {"connection": {"status": "connecting"}}
    container.mqtt_bridge = bridge

    data = _data(client.get("/api/thermostat/health"))

    assert data["status"] == "degraded"
    assert data["mqtt"] == {"status": "connecting"}
    container.mqtt_bridge = None


def test_unknown_api_route_returns_json_404(client):
    response = client.get("/api/thermostat/nope")

    assert response.status_code == 404
    assert response.get_json()["ok"] is False


def test_start_while_faulted_returns_409_until_reset(client, container):
    loop = container.control_loop
    loop.start()
    container.hardware.sensor.fail_next = 5
    for _ in range(5):
        loop.tick()

    response = client.post("/api/thermostat/start")
    assert response.status_code == 409
    assert _data(client.get("/api/thermostat/state"))["status"] == "faulted"

    assert client.post("/api/thermostat/reset").status_code == 200
    assert client.post("/api/thermostat/start").status_code == 200


def test_ping(client):
    response = client.get("/api/thermostat/ping")

    assert response.status_code == 200
    assert _data(response)["status"] == "ok"
