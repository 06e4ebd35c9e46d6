"""
Enums Module
============

Enumeration types shared by the control loop, the MQTT bridge and the API.
"""

from thermostat.enums.common import ConnectionStatus, ControlLoopStatus, HealthLevel, ThermostatMode
from thermostat.enums.events import DeviceEvent, EventType, ThermostatEvent

__all__ = [
    "ConnectionStatus",
    "ControlLoopStatus",
    "DeviceEvent",
    "EventType",
    "HealthLevel",
    "ThermostatEvent",
    "ThermostatMode",
]
