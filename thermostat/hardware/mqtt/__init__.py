from thermostat.hardware.mqtt.client_factory import create_mqtt_client
from thermostat.hardware.mqtt.mqtt_bridge import MQTTBridge
from thermostat.hardware.mqtt.topics import MQTTTopics

__all__ = ["MQTTBridge", "MQTTTopics", "create_mqtt_client"]
