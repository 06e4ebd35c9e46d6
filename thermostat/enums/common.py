from enum import Enum


class ControlLoopStatus(str, Enum):
    """
    Externally visible control loop phase.
    Used by: ThermostatState snapshots, health API
    """

    STOPPED = "stopped"
    IDLE = "idle"
    HEATING = "heating"
    FAULTED = "faulted"


class ThermostatMode(str, Enum):
    """Mode published over MQTT; derived from is_running, never from is_heating."""

    HEAT = "heat"
    OFF = "off"

    @classmethod
    def from_running(cls, is_running: bool) -> "ThermostatMode":
        return cls.HEAT if is_running else cls.OFF


class ConnectionStatus(str, Enum):
    """MQTT bridge connection phase."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISABLED = "disabled"


class HealthLevel(str, Enum):
    """
    System/component health levels.
    Used by: health API
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
