"""
Shared test fixtures for the thermostat test suite.

Provides:
- A controllable monotonic clock for the minimum-action interval
- A scripted temperature sensor (values or failures on demand)
- A simulated relay and a real EventBus
- A ControlLoop wired to all of the above, with a tick period long enough
  that tests drive ``tick()`` by hand

Usage:
    def test_example(make_loop, sensor, clock):
        loop = make_loop()
        sensor.value = 19.0
        clock.advance(30)
        loop.start()
        loop.tick()
"""

from __future__ import annotations

import logging

import pytest

from thermostat.domain.exceptions import SensorError
from thermostat.hardware.actuators.relays import SimulatedRelay
from thermostat.hardware.sensors.drivers.base import TemperatureSensor
from thermostat.services.settings_store import SettingsStore
from thermostat.utils.event_bus import EventBus

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("thermostat").setLevel(logging.WARNING)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubSensor(TemperatureSensor):
    """Returns ``value`` or raises while ``failures`` > 0 (or forever if ``always_fail``)."""

    def __init__(self, value: float = 20.0):
        self.value = value
        self.failures = 0
        self.always_fail = False
        self.reads = 0

    def read(self) -> float:
        self.reads += 1
        if self.always_fail:
            raise SensorError("sensor unplugged")
        if self.failures > 0:
            self.failures -= 1
            raise SensorError("transient read failure")
        return self.value


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def sensor():
    return StubSensor()


@pytest.fixture()
def event_bus():
    return EventBus()


@pytest.fixture()
def relay(event_bus):
    return SimulatedRelay("heater", event_bus=event_bus)


@pytest.fixture()
def settings_path(tmp_path):
    return str(tmp_path / "settings.json")


@pytest.fixture()
def settings_store(settings_path):
    return SettingsStore(settings_path, default_target=22.0, default_hysteresis=1.5)


@pytest.fixture()
def make_loop(sensor, relay, settings_store, event_bus, clock):
    """Factory for ControlLoops; every loop built here is stopped on teardown."""
    from thermostat.control_loops import ControlLoop

    created = []

    def _make(**overrides):
        kwargs = {
            "check_interval_s": 3600.0,
            "max_consecutive_errors": 5,
            "min_action_interval_s": 30.0,
            "clock": clock,
        }
        kwargs.update(overrides)
        loop = ControlLoop(sensor, relay, settings_store, event_bus, **kwargs)
        created.append(loop)
        return loop

    yield _make

    for loop in created:
        loop.stop()


@pytest.fixture()
def loop(make_loop):
    return make_loop()
