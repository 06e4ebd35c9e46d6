"""
Configuration for the relay thermostat service
==============================================
Runtime settings for the control loop, the MQTT bridge, the hardware layer
and the HTTP API, all loaded from ``THERMOSTAT_*`` environment variables.
Setups the logging configuration as well.
"""

import os
import socket
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from thermostat.domain.exceptions import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a number.") from None


def _default_client_id() -> str:
    return os.getenv("THERMOSTAT_MQTT_CLIENT_ID") or f"thermostat_{socket.gethostname()}"


# Bounds shared by the control loop, the settings store and the HTTP layer.
MIN_TARGET_TEMPERATURE = 5.0
MAX_TARGET_TEMPERATURE = 30.0
MAX_HYSTERESIS = 5.0

HARDWARE_MODES = {"auto", "gpio", "simulated"}


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("THERMOSTAT_ENV", "development"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("THERMOSTAT_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("THERMOSTAT_LOG_LEVEL", "INFO"))
    log_dir: str = field(default_factory=lambda: os.getenv("THERMOSTAT_LOG_DIR", "logs"))

    # Control loop
    default_target_temperature: float = field(
        default_factory=lambda: _env_float("THERMOSTAT_DEFAULT_TARGET", 22.0)
    )
    default_hysteresis: float = field(default_factory=lambda: _env_float("THERMOSTAT_DEFAULT_HYSTERESIS", 1.5))
    check_interval_s: float = field(default_factory=lambda: _env_float("THERMOSTAT_CHECK_INTERVAL", 3.0))
    max_consecutive_errors: int = field(default_factory=lambda: _env_int("THERMOSTAT_MAX_CONSECUTIVE_ERRORS", 5))
    min_action_interval_s: float = field(
        default_factory=lambda: _env_float("THERMOSTAT_MIN_ACTION_INTERVAL", 30.0)
    )
    autostart: bool = field(default_factory=lambda: _env_bool("THERMOSTAT_AUTOSTART", False))

    # Settings persistence
    settings_path: str = field(
        default_factory=lambda: os.getenv("THERMOSTAT_SETTINGS_PATH", "var/thermostat_settings.json")
    )

    # Hardware
    hardware_mode: str = field(default_factory=lambda: os.getenv("THERMOSTAT_HARDWARE", "auto").lower())
    relay_gpio_pin: int = field(default_factory=lambda: _env_int("THERMOSTAT_RELAY_PIN", 17))
    relay_active_low: bool = field(default_factory=lambda: _env_bool("THERMOSTAT_RELAY_ACTIVE_LOW", True))
    w1_devices_path: str = field(
        default_factory=lambda: os.getenv("THERMOSTAT_W1_DEVICES_PATH", "/sys/bus/w1/devices")
    )
    simulated_start_temperature: float = field(
        default_factory=lambda: _env_float("THERMOSTAT_SIM_START_TEMPERATURE", 19.0)
    )
    simulated_ambient_temperature: float = field(
        default_factory=lambda: _env_float("THERMOSTAT_SIM_AMBIENT_TEMPERATURE", 12.0)
    )

    # MQTT bridge
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("THERMOSTAT_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("THERMOSTAT_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("THERMOSTAT_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=_default_client_id)
    mqtt_username: str = field(default_factory=lambda: os.getenv("THERMOSTAT_MQTT_USERNAME", ""))
    mqtt_password: str = field(default_factory=lambda: os.getenv("THERMOSTAT_MQTT_PASSWORD", ""))
    mqtt_topic_prefix: str = field(default_factory=lambda: os.getenv("THERMOSTAT_MQTT_TOPIC_PREFIX", "thermostat"))
    mqtt_keepalive_s: int = field(default_factory=lambda: _env_int("THERMOSTAT_MQTT_KEEPALIVE", 60))
    mqtt_publish_interval_s: float = field(
        default_factory=lambda: _env_float("THERMOSTAT_MQTT_PUBLISH_INTERVAL", 10.0)
    )
    mqtt_reconnect_min_delay_s: int = field(default_factory=lambda: _env_int("THERMOSTAT_MQTT_RECONNECT_MIN", 5))
    mqtt_reconnect_max_delay_s: int = field(default_factory=lambda: _env_int("THERMOSTAT_MQTT_RECONNECT_MAX", 60))
    mqtt_max_reconnect_attempts: int = field(
        default_factory=lambda: _env_int("THERMOSTAT_MQTT_MAX_RECONNECT_ATTEMPTS", 10)
    )

    # EventBus
    eventbus_queue_size: int = field(default_factory=lambda: _env_int("THERMOSTAT_EVENTBUS_QUEUE_SIZE", 256))
    eventbus_worker_count: int = field(default_factory=lambda: _env_int("THERMOSTAT_EVENTBUS_WORKER_COUNT", 1))

    # HTTP API
    http_host: str = field(default_factory=lambda: os.getenv("THERMOSTAT_HTTP_HOST", "0.0.0.0"))
    http_port: int = field(default_factory=lambda: _env_int("THERMOSTAT_HTTP_PORT", 8000))

    def __post_init__(self) -> None:
        if not MIN_TARGET_TEMPERATURE <= self.default_target_temperature <= MAX_TARGET_TEMPERATURE:
            raise ConfigurationError(
                f"Default target temperature {self.default_target_temperature} must be between "
                f"{MIN_TARGET_TEMPERATURE} and {MAX_TARGET_TEMPERATURE}."
            )
        if not 0 < self.default_hysteresis <= MAX_HYSTERESIS:
            raise ConfigurationError(f"Default hysteresis {self.default_hysteresis} must be in (0, {MAX_HYSTERESIS}].")
        if self.check_interval_s <= 0:
            raise ConfigurationError("THERMOSTAT_CHECK_INTERVAL must be positive.")
        if self.max_consecutive_errors < 1:
            raise ConfigurationError("THERMOSTAT_MAX_CONSECUTIVE_ERRORS must be at least 1.")
        if self.min_action_interval_s < 0:
            raise ConfigurationError("THERMOSTAT_MIN_ACTION_INTERVAL cannot be negative.")
        if self.hardware_mode not in HARDWARE_MODES:
            raise ConfigurationError(
                f"THERMOSTAT_HARDWARE must be one of {sorted(HARDWARE_MODES)}, got {self.hardware_mode!r}."
            )
        if self.mqtt_publish_interval_s <= 0:
            raise ConfigurationError("THERMOSTAT_MQTT_PUBLISH_INTERVAL must be positive.")
        if self.mqtt_reconnect_min_delay_s > self.mqtt_reconnect_max_delay_s:
            raise ConfigurationError("THERMOSTAT_MQTT_RECONNECT_MIN cannot exceed THERMOSTAT_MQTT_RECONNECT_MAX.")
        if self.mqtt_max_reconnect_attempts < 1:
            raise ConfigurationError("THERMOSTAT_MQTT_MAX_RECONNECT_ATTEMPTS must be at least 1.")
        self.mqtt_topic_prefix = self.mqtt_topic_prefix.strip("/") or "thermostat"

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DEBUG": self.DEBUG,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
            "MQTT_TOPIC_PREFIX": self.mqtt_topic_prefix,
            "JSON_SORT_KEYS": False,
        }


def setup_logging(debug: bool = False, level: str | None = None, log_dir: str = "logs") -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid duplicate handlers when create_app is called more than once
    has_console = any(getattr(h, "name", "") == "thermostat_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "thermostat_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "thermostat_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "thermostat.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.name = "thermostat_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"thermostat_console", "thermostat_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("THERMOSTAT_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
