"""
Simulated temperature sensor for development machines.

Models a single room: while the coupled relay is on the room gains heat,
and it always loses heat toward the ambient (outside) temperature in
proportion to the difference. A little noise keeps readings realistic.
"""

import logging
import random
import threading
import time
from typing import Callable

from thermostat.domain.exceptions import SensorError

from .base import TemperatureSensor

logger = logging.getLogger(__name__)


class SimulatedTemperatureSensor(TemperatureSensor):
    name = "simulated"

    def __init__(
        self,
        heater_state: Callable[[], bool] | None = None,
        *,
        start_temperature: float = 19.0,
        ambient_temperature: float = 12.0,
        heat_rate_c_per_min: float = 0.5,
        loss_rate_per_min: float = 0.02,
        noise_c: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.heater_state = heater_state or (lambda: False)
        self.temperature = float(start_temperature)
        self.ambient_temperature = float(ambient_temperature)
        self.heat_rate_c_per_min = heat_rate_c_per_min
        self.loss_rate_per_min = loss_rate_per_min
        self.noise_c = noise_c
        self.fail_next = 0
        self._clock = clock
        self._last_step = clock()
        self._lock = threading.Lock()

    def read(self) -> float:
        with self._lock:
            if self.fail_next > 0:
                self.fail_next -= 1
                raise SensorError("Simulated sensor failure")

            now = self._clock()
            minutes = max(0.0, now - self._last_step) / 60.0
            self._last_step = now

            gain = self.heat_rate_c_per_min * minutes if self.heater_state() else 0.0
            loss = self.loss_rate_per_min * minutes * (self.temperature - self.ambient_temperature)
            self.temperature += gain - loss

            reading = self.temperature + (random.uniform(-self.noise_c, self.noise_c) if self.noise_c else 0.0)
            return round(reading, 3)
