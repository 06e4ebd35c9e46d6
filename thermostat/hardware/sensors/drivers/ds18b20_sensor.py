"""
Hardware driver for the DS18B20 1-Wire temperature sensor.

The kernel w1-therm module exposes each probe as
``/sys/bus/w1/devices/28-xxxxxxxxxxxx/w1_slave``::

    72 01 4b 46 7f ff 0e 10 57 : crc=57 YES
    72 01 4b 46 7f ff 0e 10 57 t=23125

The first line must end in ``YES`` (CRC ok); ``t=`` is millidegrees Celsius.
"""

import logging
import os
import re

from thermostat.domain.exceptions import SensorError

from .base import TemperatureSensor

logger = logging.getLogger(__name__)

W1_DEVICES_PATH = "/sys/bus/w1/devices"
SENSOR_PREFIX = "28-"

_TEMPERATURE_RE = re.compile(r"t=(-?\d+)")


def parse_w1_slave(data: str) -> float:
    """Parse the contents of a ``w1_slave`` file into degrees Celsius."""
    lines = data.strip().splitlines()
    if len(lines) < 2:
        raise SensorError("Incomplete DS18B20 reading")
    if not lines[0].strip().endswith("YES"):
        raise SensorError("DS18B20 CRC check failed")
    match = _TEMPERATURE_RE.search(lines[1])
    if not match:
        raise SensorError("Invalid DS18B20 data format")
    return int(match.group(1)) / 1000.0


class DS18B20Sensor(TemperatureSensor):
    """
    Reads the first (or a named) DS18B20 probe on the 1-Wire bus.
    """

    name = "ds18b20"

    def __init__(self, devices_path: str = W1_DEVICES_PATH, device_id: str | None = None):
        self.devices_path = devices_path
        self.device_id = device_id

    def _sensor_path(self) -> str:
        if not os.path.isdir(self.devices_path):
            raise SensorError(f"1-Wire bus not available at {self.devices_path}")

        if self.device_id:
            folder = self.device_id
            if not os.path.isdir(os.path.join(self.devices_path, folder)):
                raise SensorError(f"DS18B20 sensor {folder} not found")
        else:
            candidates = sorted(name for name in os.listdir(self.devices_path) if name.startswith(SENSOR_PREFIX))
            if not candidates:
                raise SensorError("No DS18B20 sensor found")
            folder = candidates[0]

        return os.path.join(self.devices_path, folder, "w1_slave")

    def read(self) -> float:
        path = self._sensor_path()
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = fh.read()
        except OSError as e:
            raise SensorError(f"Error reading {path}: {e}") from e
        temperature = parse_w1_slave(data)
        logger.debug("DS18B20 %s read %.3f°C", path, temperature)
        return temperature
