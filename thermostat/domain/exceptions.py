"""Centralized exception hierarchy for the thermostat service.

All domain and service exceptions inherit from :class:`ThermostatError` so
that callers can catch a single base class when they need a broad safety
net, yet still match on specific subclasses where narrower handling is
appropriate.

Blueprint-level error handling (see ``thermostat/utils/http.safe_route``)
maps these to the correct HTTP status codes automatically.

Hierarchy
---------
::

    ThermostatError (base, maps to 500)
    ├── ValidationError          (400: bad input from caller)
    │   └── RangeError           (400: target/hysteresis out of bounds)
    ├── DeviceError              (503: hardware communication)
    │   ├── SensorError          (transient read failure)
    │   └── ActuatorError        (relay command failure)
    ├── BridgeConnectionError    (502: broker / network)
    └── ConfigurationError       (500: missing / invalid config)
"""

from __future__ import annotations


class ThermostatError(Exception):
    """Base exception for all thermostat application errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(ThermostatError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class RangeError(ValidationError):
    """Target temperature or hysteresis outside the allowed bounds."""


# ── Server errors (5xx) ──────────────────────────────────────────────


class DeviceError(ThermostatError):
    """Hardware communication failure (HTTP 503)."""

    http_status: int = 503


class SensorError(DeviceError):
    """Temperature sensor could not produce a reading."""


class ActuatorError(DeviceError):
    """Relay could not be driven to the requested state."""


class BridgeConnectionError(ThermostatError):
    """Message broker unreachable or the connection dropped (HTTP 502)."""

    http_status: int = 502


class ConfigurationError(ThermostatError):
    """Missing or invalid configuration (HTTP 500)."""

    http_status: int = 500
