"""
Temperature sensor drivers.
"""

from .base import TemperatureSensor
from .ds18b20_sensor import DS18B20Sensor, parse_w1_slave
from .simulated_sensor import SimulatedTemperatureSensor

__all__ = [
    "DS18B20Sensor",
    "SimulatedTemperatureSensor",
    "TemperatureSensor",
    "parse_w1_slave",
]
