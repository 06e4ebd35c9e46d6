"""
Short-lived cache for on-demand temperature reads.

The HTTP ``/temperature`` endpoint may be polled aggressively by dashboards;
a DS18B20 conversion takes ~750 ms, so repeated requests within the TTL share
one reading instead of queueing on the 1-Wire bus.
"""

import logging
import threading
import time
from typing import Callable

from thermostat.hardware.sensors.drivers.base import TemperatureSensor

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 0.5


class TemperatureCache:
    def __init__(
        self,
        sensor: TemperatureSensor,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sensor = sensor
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._value: float | None = None
        self._read_at = 0.0

    def read(self) -> tuple[float, bool]:
        """
        Return ``(temperature, cached)``.

        Raises:
            SensorError: If a fresh read was needed and failed.
        """
        with self._lock:
            now = self._clock()
            if self._value is not None and now - self._read_at < self.ttl_s:
                return self._value, True
            value = float(self.sensor.read())
            self._value = value
            self._read_at = now
            return value, False

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
