"""
Blueprint Common Utilities
==========================

Shared helper functions for the API blueprints.

Usage:
    from thermostat.blueprints.api._common import (
        get_container, get_json, success, fail, get_control_loop, get_mqtt_bridge,
    )
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import current_app, request

from thermostat.utils.http import error_response, success_response

logger = logging.getLogger("api._common")

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_control_loop():
    return get_container().control_loop


def get_mqtt_bridge():
    """The MQTT bridge, or None when THERMOSTAT_ENABLE_MQTT is off."""
    return getattr(get_container(), "mqtt_bridge", None)


def notify_bridge(*values: str) -> None:
    """
    Republish the given single values (``"setpoint"``, ``"mode"``, ``"relay"``)
    so MQTT observers see HTTP changes without waiting for the periodic cycle.
    """
    bridge: Optional[object] = get_mqtt_bridge()
    if bridge is None:
        return
    for value in values:
        try:
            getattr(bridge, f"publish_{value}")()
        except Exception as e:
            logger.warning("Could not republish %s over MQTT: %s", value, e)


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """
    Get JSON request body with silent failure.

    Returns:
        dict: Parsed JSON body or empty dict if not available
    """
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """
    Standard success response wrapper.

    Returns:
        Flask Response with format: {"ok": true, "data": ..., "error": null}
    """
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """
    Standard error response wrapper.

    Returns:
        Flask Response with format: {"ok": false, "data": null, "error": {...}}
    """
    return error_response(message, status, details=details)
