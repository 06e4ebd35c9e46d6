# Description: GPIO relay implementation for Raspberry Pi.
#
import logging

from thermostat.domain.exceptions import DeviceError
from thermostat.utils.event_bus import EventBus

from .relay_base import RelayBase

logger = logging.getLogger(__name__)


def load_gpio():
    """Imports RPi.GPIO only if running on Raspberry Pi; returns None elsewhere."""
    try:
        import RPi.GPIO as GPIO  # type: ignore

        return GPIO
    except (ImportError, RuntimeError):
        return None


class GPIORelay(RelayBase):
    """
    Controls the heating relay through a Raspberry Pi GPIO pin.

    Most relay boards are active-low: driving the pin LOW energizes the coil.

    Attributes:
        device (str): The name of the controlled device.
        pin (int): The BCM GPIO pin used to control the relay.
        active_low (bool): Whether LOW means "on".
    """

    def __init__(
        self,
        device: str,
        pin: int,
        *,
        active_low: bool = True,
        gpio=None,
        event_bus: EventBus | None = None,
    ):
        """
        Initializes the GPIO relay and forces it off.

        Args:
            device (str): The name of the device.
            pin (int): The GPIO pin number to control the relay.
            active_low (bool): Drive LOW to switch the relay on.
            gpio: GPIO module to use; defaults to RPi.GPIO.

        Raises:
            DeviceError: If GPIO is not available or the pin cannot be set up.
        """
        super().__init__(device, event_bus=event_bus)
        self.pin = pin
        self.active_low = active_low
        self.GPIO = gpio if gpio is not None else load_gpio()
        if self.GPIO is None:
            raise DeviceError(f"GPIO is not available. GPIO relay {device} cannot be initialized.")
        try:
            self.GPIO.setwarnings(False)
            self.GPIO.setmode(self.GPIO.BCM)
            self.GPIO.setup(self.pin, self.GPIO.OUT, initial=self._level(False))
        except Exception as e:
            raise DeviceError(f"Failed to set up GPIO pin {pin}: {e}") from e
        logger.info("GPIO pin %s set as OUTPUT for %s (relay off)", self.pin, self.device)

    def _level(self, on: bool):
        high = on != self.active_low
        return self.GPIO.HIGH if high else self.GPIO.LOW

    def _write(self, on: bool) -> None:
        self.GPIO.output(self.pin, self._level(on))

    def cleanup(self):
        """Forces the relay off and releases the GPIO pin."""
        try:
            self.GPIO.output(self.pin, self._level(False))
            self.GPIO.cleanup(self.pin)
            logger.info("Cleaned up GPIO pin %s for %s", self.pin, self.device)
        except Exception as e:
            logger.error("Error cleaning up GPIO pin %s: %s", self.pin, e)
