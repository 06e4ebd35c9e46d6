"""
MQTT bridge API
===============

Routes:
- GET  /api/mqtt/status   - Connection state, broker and topic layout
- POST /api/mqtt/restart  - Reconnect from scratch (re-enables a disabled bridge)
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from thermostat.blueprints.api._common import fail, get_mqtt_bridge, success
from thermostat.domain.exceptions import BridgeConnectionError
from thermostat.utils.http import safe_route

logger = logging.getLogger(__name__)

mqtt_api = Blueprint("mqtt_api", __name__, url_prefix="/api/mqtt")


@mqtt_api.get("/status")
@safe_route("Failed to get MQTT status")
def get_status() -> Response:
    bridge = get_mqtt_bridge()
    if bridge is None:
        return success({"configured": False, "connection": None})
    return success({"configured": True, **bridge.get_status()})


@mqtt_api.post("/restart")
@safe_route("Failed to restart MQTT bridge")
def restart() -> Response:
    bridge = get_mqtt_bridge()
    if bridge is None:
        return fail("MQTT bridge is not configured", 409)
    if not bridge.restart():
        raise BridgeConnectionError("MQTT bridge could not be restarted")
    logger.info("MQTT bridge restarted via API")
    return success(bridge.get_status(), message="MQTT bridge restarting")
