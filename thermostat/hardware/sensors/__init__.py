from thermostat.hardware.sensors.drivers import DS18B20Sensor, SimulatedTemperatureSensor, TemperatureSensor

__all__ = ["DS18B20Sensor", "SimulatedTemperatureSensor", "TemperatureSensor"]
