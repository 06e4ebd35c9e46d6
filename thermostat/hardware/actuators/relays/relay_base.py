"""
This file contains the base class for all relay types.
The RelayBase class defines the common interface the control loop drives: set/get the
binary output, plus turn_on/turn_off helpers and cleanup.
"""

import logging
import threading

from thermostat.enums.events import ThermostatEvent
from thermostat.schemas.events import RelayStatePayload
from thermostat.utils.event_bus import EventBus
from thermostat.utils.time import iso_now

logger = logging.getLogger(__name__)


class RelayBase:
    """
    Base class for all relay types.

    Attributes:
        device (str): The name of the device controlled by the relay.

    Methods:
        set_state(on): Drives the output; returns True on success, False on failure.
        get_state(): Returns the last successfully commanded state.
        _write(on): Hardware write. (Implemented in subclasses)
    """

    def __init__(self, device: str, event_bus: EventBus | None = None):
        """
        Initializes the relay with a device name.

        Args:
            device (str): The name of the device controlled by the relay.
            event_bus (EventBus, optional): Bus notified on every state change.
        """
        self.device = device
        self.event_bus = event_bus
        self._state = False
        self._io_lock = threading.Lock()

    def _write(self, on: bool) -> None:
        """Writes the output. Raises on hardware failure. Implemented in subclasses."""
        raise NotImplementedError("Subclasses must implement _write method")

    def set_state(self, on: bool) -> bool:
        """
        Commands the relay.

        Args:
            on (bool): True to energize the relay, False to release it.

        Returns:
            bool: True if the write succeeded.
        """
        with self._io_lock:
            try:
                self._write(bool(on))
            except Exception as e:
                logger.error("Error switching relay %s %s: %s", self.device, "on" if on else "off", e)
                return False
            changed = self._state != bool(on)
            self._state = bool(on)

        logger.info("Relay %s %s", self.device, "on" if on else "off")
        if changed and self.event_bus is not None:
            self.event_bus.publish(
                ThermostatEvent.RELAY_STATE_CHANGED,
                RelayStatePayload(device=self.device, state="on" if on else "off", timestamp=iso_now()),
            )
        return True

    def get_state(self) -> bool:
        return self._state

    def turn_on(self) -> bool:
        return self.set_state(True)

    def turn_off(self) -> bool:
        return self.set_state(False)

    def cleanup(self) -> None:
        """Releases hardware resources. Optional for subclasses."""

    def get_device(self) -> str:
        return self.device

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.cleanup()
