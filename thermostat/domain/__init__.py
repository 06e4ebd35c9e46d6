from thermostat.domain.exceptions import (
    ActuatorError,
    BridgeConnectionError,
    ConfigurationError,
    DeviceError,
    RangeError,
    SensorError,
    ThermostatError,
    ValidationError,
)
from thermostat.domain.state import ConnectionState, ThermostatState

__all__ = [
    "ActuatorError",
    "BridgeConnectionError",
    "ConfigurationError",
    "ConnectionState",
    "DeviceError",
    "RangeError",
    "SensorError",
    "ThermostatError",
    "ThermostatState",
    "ValidationError",
]
