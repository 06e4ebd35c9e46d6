"""
Hardware Factory

Selects the sensor/relay implementations once, at composition time. The
control loop only ever sees the TemperatureSensor / RelayBase interfaces.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from thermostat.config import AppConfig
from thermostat.domain.exceptions import ConfigurationError, DeviceError
from thermostat.hardware.actuators.relays import GPIORelay, RelayBase, SimulatedRelay
from thermostat.hardware.actuators.relays.gpio_relay import load_gpio
from thermostat.hardware.sensors.drivers import DS18B20Sensor, SimulatedTemperatureSensor, TemperatureSensor
from thermostat.utils.event_bus import EventBus

logger = logging.getLogger(__name__)

RELAY_DEVICE_NAME = "heater"


@dataclass
class Hardware:
    sensor: TemperatureSensor
    relay: RelayBase
    simulated: bool

    def cleanup(self) -> None:
        self.relay.cleanup()
        self.sensor.cleanup()


def hardware_available(config: AppConfig) -> bool:
    """True when both RPi.GPIO and the 1-Wire bus are present."""
    return load_gpio() is not None and os.path.isdir(config.w1_devices_path)


def create_hardware(config: AppConfig, event_bus: EventBus | None = None) -> Hardware:
    """
    Build the sensor/relay pair for this environment.

    ``THERMOSTAT_HARDWARE=gpio`` requires real hardware and fails loudly;
    ``simulated`` never touches GPIO; ``auto`` detects.
    """
    mode = config.hardware_mode
    if mode == "auto":
        mode = "gpio" if hardware_available(config) else "simulated"
        logger.info("Hardware auto-detection selected %s mode", mode)

    if mode == "gpio":
        try:
            relay = GPIORelay(
                RELAY_DEVICE_NAME,
                config.relay_gpio_pin,
                active_low=config.relay_active_low,
                event_bus=event_bus,
            )
        except DeviceError as e:
            raise ConfigurationError(f"GPIO hardware requested but unavailable: {e}") from e
        sensor = DS18B20Sensor(config.w1_devices_path)
        logger.info("Using DS18B20 sensor and GPIO relay on pin %s", config.relay_gpio_pin)
        return Hardware(sensor=sensor, relay=relay, simulated=False)

    relay = SimulatedRelay(RELAY_DEVICE_NAME, event_bus=event_bus)
    sensor = SimulatedTemperatureSensor(
        relay.get_state,
        start_temperature=config.simulated_start_temperature,
        ambient_temperature=config.simulated_ambient_temperature,
    )
    logger.warning("Running with simulated sensor and relay (no hardware attached)")
    return Hardware(sensor=sensor, relay=relay, simulated=True)
