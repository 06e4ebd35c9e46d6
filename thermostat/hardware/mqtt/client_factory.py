"""
Helpers for constructing paho clients that behave the same on paho-mqtt 1.x and 2.x.

paho 2.x requires a callback API version; the bridge is written against the
VERSION1 callback signatures (``on_connect(client, userdata, flags, rc)``,
``on_disconnect(client, userdata, rc)``), which 1.x uses implicitly.
"""
from __future__ import annotations

from typing import Any, Dict

import paho.mqtt.client as mqtt


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT v3.1.1 client with VERSION1 callbacks.

    Args:
        client_id: Client identifier; should be unique per device on the broker.
        kwargs: Extra keyword arguments forwarded to ``mqtt.Client``
            (``clean_session``, ``transport``, ...).
    """
    client_kwargs: Dict[str, Any] = {
        "client_id": client_id or "",
        "protocol": kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4)),
    }
    client_kwargs.update(kwargs)

    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is not None:
        client_kwargs["callback_api_version"] = callback_api_version.VERSION1

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # paho < 2.0 has no callback_api_version parameter
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)
