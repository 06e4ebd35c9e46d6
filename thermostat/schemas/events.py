from typing import Any

from pydantic import BaseModel


class SafetyShutdownPayload(BaseModel):
    reason: str
    consecutive_errors: int
    last_error: str | None = None
    relay_off_confirmed: bool = True
    timestamp: str | None = None


class RelayStatePayload(BaseModel):
    device: str
    state: str
    source: str = "control_loop"
    timestamp: str | None = None


class ConnectivityStatePayload(BaseModel):
    connection_type: str  # e.g., 'mqtt'
    status: str  # 'connected' | 'disconnected' | 'disabled'
    endpoint: str | None = None  # broker host:port
    port: int | None = None
    details: dict[str, Any] | None = None
    timestamp: str | None = None
