from thermostat.schemas.commands import (
    HysteresisRequest,
    ModeCommand,
    RelayCommand,
    SetpointCommand,
    StartRequest,
    TargetRequest,
)
from thermostat.schemas.events import ConnectivityStatePayload, RelayStatePayload, SafetyShutdownPayload

__all__ = [
    "ConnectivityStatePayload",
    "HysteresisRequest",
    "ModeCommand",
    "RelayCommand",
    "RelayStatePayload",
    "SafetyShutdownPayload",
    "SetpointCommand",
    "StartRequest",
    "TargetRequest",
]
