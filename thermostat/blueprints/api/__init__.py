from thermostat.blueprints.api.mqtt import mqtt_api
from thermostat.blueprints.api.thermostat import thermostat_api

__all__ = ["mqtt_api", "thermostat_api"]
