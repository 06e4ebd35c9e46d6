"""
MQTT bridge between the control loop and an external broker.

Publishes retained ``{value, timestamp}`` snapshots of the thermostat state,
applies commands received on the ``.../set`` topics through the ControlLoop
public API, and keeps an availability topic that the broker itself flips to
offline (last will) if the device vanishes without a clean disconnect.

Connection phases: disconnected -> connecting -> connected, back to
connecting on transport loss, and disabled after ``max_reconnect_attempts``
consecutive failed attempts or an explicit ``stop()``. Broker I/O errors only
ever change the connection state; the control loop keeps running headless.
"""

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Type

import paho.mqtt.client as mqtt
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from thermostat.domain.exceptions import ThermostatError
from thermostat.domain.state import ConnectionState, ThermostatState
from thermostat.enums.common import ThermostatMode
from thermostat.enums.events import DeviceEvent, ThermostatEvent
from thermostat.hardware.mqtt.client_factory import create_mqtt_client
from thermostat.hardware.mqtt.topics import MQTTTopics
from thermostat.schemas.commands import ModeCommand, RelayCommand, SetpointCommand
from thermostat.schemas.events import ConnectivityStatePayload
from thermostat.utils.concurrency import RepeatingTimer
from thermostat.utils.event_bus import EventBus
from thermostat.utils.time import iso_now

# Broker traffic goes to its own rotating file so it cannot flood the main log
_mqtt_logger = logging.getLogger("thermostat.mqtt")
if not _mqtt_logger.handlers:
    _log_dir = os.getenv("THERMOSTAT_LOG_DIR", "logs")
    os.makedirs(_log_dir, exist_ok=True)
    _mqtt_handler = RotatingFileHandler(
        os.path.join(_log_dir, "mqtt.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    _mqtt_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    _mqtt_logger.addHandler(_mqtt_handler)
    _mqtt_logger.setLevel(logging.INFO)
    _mqtt_logger.propagate = False

_LOG_MQTT_DISPATCH = os.getenv("THERMOSTAT_LOG_MQTT_DISPATCH", "").lower() in {"1", "true", "t", "yes", "on"}

MessageCallback = Callable[[Any, Any, Any], None]


class MQTTBridge:
    """
    Owns the broker connection for one thermostat.

    The ControlLoop is injected at construction; the bridge only talks to it
    through ``get_snapshot``/``set_target``/``override_relay``/``start``/``stop``.
    """

    def __init__(
        self,
        control_loop,
        event_bus: EventBus | None = None,
        *,
        host: str = "localhost",
        port: int = 1883,
        client_id: str = "",
        username: str | None = None,
        password: str | None = None,
        topic_prefix: str = "thermostat",
        keepalive: int = 60,
        publish_interval_s: float = 10.0,
        reconnect_min_delay_s: int = 5,
        reconnect_max_delay_s: int = 60,
        max_reconnect_attempts: int = 10,
    ):
        self.control_loop = control_loop
        self.event_bus = event_bus or control_loop.event_bus
        self.host = host
        self.port = port
        self.client_id = client_id
        self.username = username or None
        self.password = password or None
        self.keepalive = keepalive
        self.publish_interval_s = publish_interval_s
        self.reconnect_min_delay_s = reconnect_min_delay_s
        self.reconnect_max_delay_s = reconnect_max_delay_s
        self.topics = MQTTTopics.from_prefix(topic_prefix)

        self.client = None
        self.connection = ConnectionState(max_reconnect_attempts=max_reconnect_attempts)
        self._lock = threading.RLock()
        self._publish_timer: RepeatingTimer | None = None

        self._callback_lock = threading.Lock()
        self._callbacks: list[tuple[str, MessageCallback]] = []
        self._register_callback(self.topics.setpoint_command, self._handle_setpoint_command)
        self._register_callback(self.topics.relay_command, self._handle_relay_command)
        self._register_callback(self.topics.mode_command, self._handle_mode_command)

        self._unsubscribers = [
            self.event_bus.subscribe(ThermostatEvent.SAFETY_SHUTDOWN, self._on_safety_shutdown),
            self.event_bus.subscribe(ThermostatEvent.RELAY_STATE_CHANGED, self._on_relay_state_changed),
        ]

    @classmethod
    def from_config(cls, config, control_loop, event_bus: EventBus | None = None) -> "MQTTBridge":
        return cls(
            control_loop,
            event_bus,
            host=config.mqtt_broker_host,
            port=config.mqtt_broker_port,
            client_id=config.mqtt_client_id,
            username=config.mqtt_username,
            password=config.mqtt_password,
            topic_prefix=config.mqtt_topic_prefix,
            keepalive=config.mqtt_keepalive_s,
            publish_interval_s=config.mqtt_publish_interval_s,
            reconnect_min_delay_s=config.mqtt_reconnect_min_delay_s,
            reconnect_max_delay_s=config.mqtt_reconnect_max_delay_s,
            max_reconnect_attempts=config.mqtt_max_reconnect_attempts,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> bool:
        """
        Begin connecting in the background.

        paho's network thread performs the connect and every reconnect;
        failures surface through the callbacks below.
        """
        with self._lock:
            if self.connection.is_enabled:
                return True
            self.connection.is_enabled = True
            self.connection.reconnect_attempts = 0
            try:
                self.client = self._build_client()
                self.client.connect_async(self.host, self.port, self.keepalive)
                self.client.loop_start()
            except Exception as e:
                _mqtt_logger.error("Error starting MQTT connection to %s:%s: %s", self.host, self.port, e)
                self.connection.record_error(e)
                self.connection.is_enabled = False
                self.client = None
                return False

        _mqtt_logger.info("Connecting to MQTT broker %s:%s as %r", self.host, self.port, self.client_id)
        return True

    def stop(self) -> None:
        """Publish offline, disconnect cleanly and disable the bridge."""
        with self._lock:
            timer = self._cancel_publish_timer()
            client = self.client
            if self.connection.is_connected:
                self._publish_availability(False)
            self.connection.is_enabled = False
            self.connection.mark_disconnected()
            self.client = None

        if timer is not None:
            timer.cancel()
        if client is None:
            return
        try:
            client.disconnect()
            client.loop_stop()
            _mqtt_logger.info("Disconnected from MQTT broker.")
        except Exception as e:
            _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
            self.connection.record_error(e)
        self._emit_connectivity("disconnected")

    def restart(self) -> bool:
        """Tear down and reconnect from scratch; re-enables a disabled bridge."""
        _mqtt_logger.info("Restarting MQTT bridge")
        self.stop()
        with self._lock:
            self.connection.reconnect_attempts = 0
            self.connection.last_error = None
            self.connection.last_error_time = None
        return self.start()

    def close(self) -> None:
        """Stop and detach from the event bus (process shutdown)."""
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _build_client(self):
        client = create_mqtt_client(client_id=self.client_id, clean_session=True)
        if self.username:
            client.username_pw_set(self.username, self.password)
        # Registered before connect so the broker can announce us offline
        client.will_set(self.topics.online, self._envelope(False), qos=1, retain=True)
        client.reconnect_delay_set(min_delay=self.reconnect_min_delay_s, max_delay=self.reconnect_max_delay_s)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_connect_fail = self._on_connect_fail
        # Always dispatch through our fan-out handler
        client.on_message = self._dispatch_message
        return client

    # ------------------------------------------------------------------ #
    # paho callbacks (network thread)
    # ------------------------------------------------------------------ #

    def _on_connect(self, client, userdata, flags, rc) -> None:
        if rc != 0:
            # The broker closes the socket next; on_disconnect counts the attempt
            reason = mqtt.connack_string(rc)
            _mqtt_logger.error("MQTT broker refused connection: %s", reason)
            with self._lock:
                self.connection.record_error(f"Connection refused: {reason}")
            return

        with self._lock:
            if not self.connection.is_enabled:
                return
            self.connection.mark_connected()
        _mqtt_logger.info("Connected to MQTT broker %s:%s", self.host, self.port)

        self._publish_availability(True)
        self._subscribe_commands(client)
        self.publish_state()
        self._arm_publish_timer()
        self._emit_connectivity("connected")

    def _on_disconnect(self, client, userdata, rc) -> None:
        with self._lock:
            self.connection.mark_disconnected()
            self._cancel_publish_timer()
        if rc == 0:
            return
        _mqtt_logger.warning("Unexpected disconnect from MQTT broker (rc=%s), reconnecting", rc)
        self._emit_connectivity("disconnected")
        self._record_failed_attempt(f"Connection lost (rc={rc})")

    def _on_connect_fail(self, client, userdata) -> None:
        self._record_failed_attempt(f"Could not reach MQTT broker {self.host}:{self.port}")

    def _record_failed_attempt(self, reason: str) -> None:
        with self._lock:
            if not self.connection.is_enabled:
                return
            self.connection.reconnect_attempts += 1
            self.connection.record_error(reason)
            attempts = self.connection.reconnect_attempts
            limit = self.connection.max_reconnect_attempts
        _mqtt_logger.warning("%s (attempt %s/%s)", reason, attempts, limit)
        if attempts >= limit:
            self._disable(f"Giving up after {attempts} failed reconnect attempts")

    def _disable(self, reason: str) -> None:
        with self._lock:
            self.connection.is_enabled = False
            self.connection.mark_disconnected()
            self.connection.record_error(reason)
            self._cancel_publish_timer()
            client = self.client
        _mqtt_logger.error("MQTT bridge disabled: %s. Use restart() to retry.", reason)
        if client is not None:
            try:
                # Safe from the network thread: paho skips the self-join
                client.loop_stop()
            except Exception as e:
                _mqtt_logger.error("Error stopping MQTT network loop: %s", e)
        self._emit_connectivity("disabled")

    # ------------------------------------------------------------------ #
    # Subscriptions / dispatch
    # ------------------------------------------------------------------ #

    def _register_callback(self, topic: str, callback: MessageCallback) -> None:
        with self._callback_lock:
            self._callbacks.append((topic, callback))

    def _subscribe_commands(self, client) -> None:
        with self._callback_lock:
            topics = [topic for topic, _ in self._callbacks]
        for topic in topics:
            try:
                result, _mid = client.subscribe(topic, qos=1)
                if result == mqtt.MQTT_ERR_SUCCESS:
                    _mqtt_logger.info("Subscribed to topic %s", topic)
                else:
                    _mqtt_logger.error("Failed to subscribe to topic %s: result code %s", topic, result)
            except Exception as e:
                self.connection.record_error(e)
                _mqtt_logger.error("Error subscribing to MQTT topic %s: %s", topic, e)

    def _dispatch_message(self, client, userdata, msg) -> None:
        """
        Fan out MQTT messages to all registered callbacks that match the topic
        using MQTT wildcard semantics.
        """
        if _LOG_MQTT_DISPATCH:
            _mqtt_logger.debug("MQTT DISPATCHER: topic=%s payload_len=%s", msg.topic, len(msg.payload))

        with self._callback_lock:
            callbacks = list(self._callbacks)

        handled = False
        for sub, callback in callbacks:
            try:
                if mqtt.topic_matches_sub(sub, msg.topic):
                    handled = True
                    callback(client, userdata, msg)
            except Exception as e:
                _mqtt_logger.error("Error in MQTT callback for topic %s: %s", sub, e, exc_info=True)

        if not handled:
            _mqtt_logger.warning("MQTT message on %s had no registered handlers", msg.topic)

    # ------------------------------------------------------------------ #
    # Command handlers
    # ------------------------------------------------------------------ #

    def _parse_command(self, msg, model: Type[BaseModel]) -> BaseModel | None:
        try:
            return model.model_validate_json(msg.payload)
        except PydanticValidationError as e:
            _mqtt_logger.warning(
                "Dropping invalid command on %s: %s",
                msg.topic,
                "; ".join(err.get("msg", "") for err in e.errors()),
            )
            return None

    def _handle_setpoint_command(self, _client, _userdata, msg) -> None:
        command = self._parse_command(msg, SetpointCommand)
        if command is None:
            return
        try:
            self.control_loop.set_target(command.value)
        except ThermostatError as e:
            _mqtt_logger.warning("Rejected setpoint %s: %s", command.value, e)
            return
        _mqtt_logger.info("Setpoint set to %s via MQTT", command.value)
        self.publish_setpoint()

    def _handle_relay_command(self, _client, _userdata, msg) -> None:
        command = self._parse_command(msg, RelayCommand)
        if command is None:
            return
        if not self.control_loop.override_relay(command.value):
            _mqtt_logger.warning("Relay command %s was not applied", command.value)
        # Acknowledge with the actual relay state either way
        self.publish_relay()

    def _handle_mode_command(self, _client, _userdata, msg) -> None:
        command = self._parse_command(msg, ModeCommand)
        if command is None:
            return
        try:
            if command.value == ThermostatMode.HEAT.value:
                applied = self.control_loop.start()
            else:
                applied = self.control_loop.stop()
        except ThermostatError as e:
            _mqtt_logger.warning("Rejected mode %s: %s", command.value, e)
            return
        if not applied:
            _mqtt_logger.warning("Mode command %s did not complete cleanly", command.value)
        _mqtt_logger.info("Mode set to %s via MQTT", command.value)
        self.publish_mode()

    def _on_safety_shutdown(self, payload: dict) -> None:
        _mqtt_logger.error("Safety shutdown reported: %s", payload.get("reason"))
        self.publish_state()

    def _on_relay_state_changed(self, payload: dict) -> None:
        # Relay toggles are announced right away instead of on the next cycle
        self._publish_value(self.topics.relay, payload.get("state") == "on")

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    @staticmethod
    def _envelope(value: Any, timestamp: str | None = None) -> str:
        return json.dumps({"value": value, "timestamp": timestamp or iso_now()})

    def _publish(self, topic: str, payload: str, *, retain: bool = True) -> bool:
        client = self.client
        if client is None or not self.connection.is_connected:
            _mqtt_logger.debug("MQTT client not connected. Skipping publish to %s.", topic)
            return False
        try:
            msg_info = client.publish(topic, payload, qos=1, retain=retain)
            if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
                with self._lock:
                    self.connection.record_publish_success()
                _mqtt_logger.debug("Published to %s: %s", topic, payload)
                return True
            with self._lock:
                self.connection.record_publish_failure()
            _mqtt_logger.error("Failed to publish to %s: %s. MQTT result code: %s", topic, payload, msg_info.rc)
        except Exception as e:
            with self._lock:
                self.connection.record_publish_failure()
                self.connection.record_error(e)
            _mqtt_logger.error("Error publishing to MQTT: %s", e)
        return False

    def _publish_value(self, topic: str, value: Any, timestamp: str | None = None) -> bool:
        return self._publish(topic, self._envelope(value, timestamp))

    def _publish_availability(self, online: bool) -> bool:
        return self._publish_value(self.topics.online, online)

    def publish_state(self, snapshot: ThermostatState | None = None) -> bool:
        """Publish temperature, relay, setpoint and mode as retained values."""
        if not self.connection.is_connected:
            return False
        snapshot = snapshot or self.control_loop.get_snapshot()
        timestamp = iso_now()
        results = [
            self._publish_value(self.topics.temperature, snapshot.current_temperature, timestamp),
            self._publish_value(self.topics.relay, snapshot.is_heating, timestamp),
            self._publish_value(self.topics.setpoint, snapshot.target_temperature, timestamp),
            self._publish_value(self.topics.mode, snapshot.mode.value, timestamp),
        ]
        return all(results)

    def publish_temperature(self) -> bool:
        return self._publish_value(self.topics.temperature, self.control_loop.get_snapshot().current_temperature)

    def publish_relay(self) -> bool:
        return self._publish_value(self.topics.relay, self.control_loop.get_snapshot().is_heating)

    def publish_setpoint(self) -> bool:
        return self._publish_value(self.topics.setpoint, self.control_loop.get_snapshot().target_temperature)

    def publish_mode(self) -> bool:
        return self._publish_value(self.topics.mode, self.control_loop.get_snapshot().mode.value)

    def _periodic_publish(self) -> None:
        self.publish_state()

    def _arm_publish_timer(self) -> None:
        with self._lock:
            self._cancel_publish_timer()
            timer = RepeatingTimer(self.publish_interval_s, self._periodic_publish, name="MQTTPublishTimer")
            self._publish_timer = timer
            timer.start()

    def _cancel_publish_timer(self) -> RepeatingTimer | None:
        timer, self._publish_timer = self._publish_timer, None
        if timer is not None:
            timer.cancel(join_timeout=None)
        return timer

    def _emit_connectivity(self, status: str) -> None:
        try:
            payload = ConnectivityStatePayload(
                connection_type="mqtt",
                status=status,
                endpoint=f"{self.host}:{self.port}",
                port=self.port,
                details={"reconnect_attempts": self.connection.reconnect_attempts},
                timestamp=iso_now(),
            )
            self.event_bus.publish(DeviceEvent.CONNECTIVITY_CHANGED, payload)
        except Exception as e:
            _mqtt_logger.error("Failed to publish connectivity event: %s", e)

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    def is_healthy(self) -> bool:
        with self._lock:
            return self.connection.is_enabled and self.connection.is_connected

    def get_connection_state(self) -> ConnectionState:
        with self._lock:
            return self.connection.copy()

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            connection = self.connection.to_dict()
        return {
            "connection": connection,
            "broker": {"host": self.host, "port": self.port, "clientId": self.client_id},
            "topics": self.topics.to_dict(),
            "publishIntervalMs": int(self.publish_interval_s * 1000),
        }
