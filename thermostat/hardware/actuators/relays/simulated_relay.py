import logging

from thermostat.utils.event_bus import EventBus

from .relay_base import RelayBase

logger = logging.getLogger(__name__)


class SimulatedRelay(RelayBase):
    """
    In-memory relay for non-Raspberry Pi environments.

    ``fail_writes`` makes every write raise, which exercises the actuator
    error path of the control loop without hardware.
    """

    def __init__(self, device: str = "heater", event_bus: EventBus | None = None):
        super().__init__(device, event_bus=event_bus)
        self.fail_writes = False
        self.write_count = 0
        logger.info("Simulated relay %s initialized (off)", device)

    def _write(self, on: bool) -> None:
        if self.fail_writes:
            raise OSError("simulated relay fault")
        self.write_count += 1
