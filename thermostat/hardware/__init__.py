"""
Hardware layer: temperature sensors, relays and the MQTT bridge.
"""
