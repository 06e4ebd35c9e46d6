"""
Domain state objects for the control loop and the MQTT bridge.

``ThermostatState`` is owned by ``ControlLoop`` and ``ConnectionState`` by
``MQTTBridge``; everything else only ever sees copies (snapshots).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from thermostat.enums.common import ConnectionStatus, ControlLoopStatus, ThermostatMode
from thermostat.utils.time import isoformat_or_none, utc_now


@dataclass
class ThermostatState:
    current_temperature: float = 0.0
    target_temperature: float = 22.0
    hysteresis: float = 1.5
    is_heating: bool = False
    is_running: bool = False
    last_updated: datetime = field(default_factory=utc_now)
    last_error: str | None = None
    consecutive_error_count: int = 0
    faulted: bool = False

    @property
    def status(self) -> ControlLoopStatus:
        if self.faulted:
            return ControlLoopStatus.FAULTED
        if not self.is_running:
            return ControlLoopStatus.STOPPED
        return ControlLoopStatus.HEATING if self.is_heating else ControlLoopStatus.IDLE

    @property
    def mode(self) -> ThermostatMode:
        return ThermostatMode.from_running(self.is_running)

    def copy(self) -> "ThermostatState":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentTemperature": self.current_temperature,
            "targetTemperature": self.target_temperature,
            "hysteresis": self.hysteresis,
            "isHeating": self.is_heating,
            "isRunning": self.is_running,
            "lastUpdated": isoformat_or_none(self.last_updated),
            "lastError": self.last_error,
            "consecutiveErrors": self.consecutive_error_count,
            "status": self.status.value,
            "mode": self.mode.value,
        }


@dataclass
class ConnectionState:
    """
    Tracks the health of the MQTT bridge connection.
    """

    is_connected: bool = False
    is_enabled: bool = False
    reconnect_attempts: int = 0
    max_reconnect_attempts: int = 10
    last_error: str | None = None
    last_error_time: datetime | None = None
    last_publish_time: datetime | None = None
    successful_publishes: int = 0
    failed_publishes: int = 0

    @property
    def status(self) -> ConnectionStatus:
        if not self.is_enabled:
            return ConnectionStatus.DISABLED
        if self.is_connected:
            return ConnectionStatus.CONNECTED
        if self.reconnect_attempts > 0:
            return ConnectionStatus.CONNECTING
        return ConnectionStatus.DISCONNECTED

    @property
    def success_rate(self) -> float:
        """Calculate publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def mark_connected(self) -> None:
        self.is_connected = True
        self.reconnect_attempts = 0
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self) -> None:
        self.is_connected = False

    def record_error(self, error: Exception | str) -> None:
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def record_publish_success(self) -> None:
        self.successful_publishes += 1
        self.last_publish_time = utc_now()

    def record_publish_failure(self) -> None:
        self.failed_publishes += 1

    def copy(self) -> "ConnectionState":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "isConnected": self.is_connected,
            "isEnabled": self.is_enabled,
            "reconnectAttempts": self.reconnect_attempts,
            "maxReconnectAttempts": self.max_reconnect_attempts,
            "lastError": self.last_error,
            "lastErrorTime": isoformat_or_none(self.last_error_time),
            "lastPublishTime": isoformat_or_none(self.last_publish_time),
            "successfulPublishes": self.successful_publishes,
            "failedPublishes": self.failed_publishes,
            "publishSuccessRate": round(self.success_rate, 2),
        }
