from thermostat.hardware.actuators.relays import GPIORelay, RelayBase, SimulatedRelay

__all__ = ["GPIORelay", "RelayBase", "SimulatedRelay"]
