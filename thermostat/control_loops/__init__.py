"""
Control Loops Package
=====================

    timer ──► ControlLoop.tick() ──► TemperatureSensor.read()
                     │
                     ├── hysteresis decision (deadband + minimum-action interval)
                     └── RelayBase.set_state()

Safety shutdowns are announced on the EventBus (ThermostatEvent.SAFETY_SHUTDOWN).
"""

from thermostat.control_loops.control_loop import ControlLoop, validate_hysteresis, validate_target

__all__ = [
    "ControlLoop",
    "validate_hysteresis",
    "validate_target",
]
