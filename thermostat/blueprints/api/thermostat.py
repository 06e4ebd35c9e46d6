"""
Thermostat API
==============

Routes:
- GET  /api/thermostat/state        - Current state snapshot
- GET  /api/thermostat/config       - Control loop configuration
- POST /api/thermostat/start        - Start control ({targetTemperature?, hysteresis?})
- POST /api/thermostat/stop         - Stop control and switch the relay off
- PUT  /api/thermostat/target       - Set target temperature ({temperature})
- PUT  /api/thermostat/hysteresis   - Set hysteresis ({hysteresis})
- POST /api/thermostat/reset        - Clear errors (restarts if it was running)
- GET  /api/thermostat/temperature  - On-demand sensor reading (500 ms cache)
- GET  /api/thermostat/health       - Control loop + bridge health
- GET  /api/thermostat/ping         - Liveness probe
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from thermostat.blueprints.api._common import (
    fail,
    get_container,
    get_control_loop,
    get_json,
    get_mqtt_bridge,
    notify_bridge,
    success,
)
from thermostat.enums.common import ControlLoopStatus, HealthLevel
from thermostat.schemas.commands import HysteresisRequest, StartRequest, TargetRequest
from thermostat.utils.http import safe_route
from thermostat.utils.time import iso_now

logger = logging.getLogger(__name__)

thermostat_api = Blueprint("thermostat_api", __name__, url_prefix="/api/thermostat")


@thermostat_api.get("/state")
@safe_route("Failed to get thermostat state")
def get_state() -> Response:
    return success(get_control_loop().get_snapshot().to_dict())


@thermostat_api.get("/config")
@safe_route("Failed to get thermostat configuration")
def get_config() -> Response:
    return success(get_control_loop().get_config())


@thermostat_api.post("/start")
@safe_route("Failed to start thermostat")
def start() -> Response:
    """
    Start the control loop, optionally with a new target/hysteresis.

    Returns 400 when a supplied value is out of range and 409 while a safety
    shutdown is latched.
    """
    body = StartRequest.model_validate(get_json())
    loop = get_control_loop()
    if loop.status is ControlLoopStatus.FAULTED:
        return fail(
            "Thermostat is in safety shutdown, reset it first",
            409,
            details={"lastError": loop.get_snapshot().last_error},
        )
    if not loop.start(body.target_temperature, body.hysteresis):
        return fail("Failed to start thermostat", 500, details={"lastError": loop.get_snapshot().last_error})
    notify_bridge("setpoint", "mode")
    return success(loop.get_snapshot().to_dict(), message="Thermostat started")


@thermostat_api.post("/stop")
@safe_route("Failed to stop thermostat")
def stop() -> Response:
    loop = get_control_loop()
    relay_off = loop.stop()
    notify_bridge("mode", "relay")
    if not relay_off:
        return fail("Thermostat stopped but the relay could not be switched off", 503)
    return success(loop.get_snapshot().to_dict(), message="Thermostat stopped")


@thermostat_api.put("/target")
@safe_route("Failed to set target temperature")
def set_target() -> Response:
    body = TargetRequest.model_validate(get_json())
    loop = get_control_loop()
    loop.set_target(body.temperature)
    notify_bridge("setpoint")
    return success({"targetTemperature": loop.get_snapshot().target_temperature})


@thermostat_api.put("/hysteresis")
@safe_route("Failed to set hysteresis")
def set_hysteresis() -> Response:
    body = HysteresisRequest.model_validate(get_json())
    loop = get_control_loop()
    loop.set_hysteresis(body.hysteresis)
    return success({"hysteresis": loop.get_snapshot().hysteresis})


@thermostat_api.post("/reset")
@safe_route("Failed to reset thermostat")
def reset() -> Response:
    loop = get_control_loop()
    reset_ok = loop.reset()
    notify_bridge("mode", "relay")
    if not reset_ok:
        return fail("Reset failed", 500, details={"lastError": loop.get_snapshot().last_error})
    return success(loop.get_snapshot().to_dict(), message="Thermostat reset")


@thermostat_api.get("/temperature")
@safe_route("Failed to read temperature")
def read_temperature() -> Response:
    temperature, cached = get_container().temperature_cache.read()
    return success({"temperature": temperature, "cached": cached, "timestamp": iso_now()})


@thermostat_api.get("/health")
@safe_route("Failed to get thermostat health")
def health() -> Response:
    """
    Returns:
        {
            "status": "healthy|degraded|critical",
            "controlLoop": {...},
            "mqtt": {...} | null,
            "eventBus": {...},
            "simulatedHardware": bool,
            "timestamp": "..."
        }
    """
    container = get_container()
    loop_health = container.control_loop.get_health_status()
    bridge = get_mqtt_bridge()

    if loop_health["status"] == ControlLoopStatus.FAULTED.value:
        level = HealthLevel.CRITICAL
    elif loop_health["consecutive_errors"] > 0 or (bridge is not None and not bridge.is_healthy()):
        level = HealthLevel.DEGRADED
    else:
        level = HealthLevel.HEALTHY

    return success(
        {
            "status": level.value,
            "controlLoop": loop_health,
            "mqtt": bridge.get_status()["connection"] if bridge is not None else None,
            "eventBus": container.event_bus.get_metrics(),
            "simulatedHardware": container.hardware.simulated,
            "timestamp": iso_now(),
        }
    )


@thermostat_api.get("/ping")
def ping() -> Response:
    return success({"status": "ok", "timestamp": iso_now()})
