from enum import Enum
from typing import TypeAlias


class ThermostatEvent(str, Enum):
    """Notifications emitted by the control loop on the EventBus."""

    SAFETY_SHUTDOWN = "safety_shutdown"
    RELAY_STATE_CHANGED = "relay_state_changed"


class DeviceEvent(str, Enum):
    CONNECTIVITY_CHANGED = "connectivity_changed"


EventType: TypeAlias = ThermostatEvent | DeviceEvent
