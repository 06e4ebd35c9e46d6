from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from thermostat.config import AppConfig
from thermostat.control_loops import ControlLoop
from thermostat.hardware.factory import Hardware, create_hardware
from thermostat.hardware.mqtt import MQTTBridge
from thermostat.services.settings_store import SettingsStore
from thermostat.services.temperature_cache import TemperatureCache
from thermostat.utils.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the thermostat's long-lived components."""

    config: AppConfig
    event_bus: EventBus
    settings_store: SettingsStore
    hardware: Hardware
    control_loop: ControlLoop
    temperature_cache: TemperatureCache
    mqtt_bridge: Optional[MQTTBridge] = None
    _shutdown_complete: bool = field(default=False, repr=False)

    @classmethod
    def build(cls, config: AppConfig, *, start_services: bool = False) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            start_services: Connect the MQTT bridge and honour THERMOSTAT_AUTOSTART
        """
        logger.info("Building ServiceContainer...")
        event_bus = EventBus(queue_size=config.eventbus_queue_size, worker_count=config.eventbus_worker_count)
        settings_store = SettingsStore(
            config.settings_path,
            default_target=config.default_target_temperature,
            default_hysteresis=config.default_hysteresis,
        )
        hardware = create_hardware(config, event_bus=event_bus)

        control_loop = ControlLoop(
            hardware.sensor,
            hardware.relay,
            settings_store,
            event_bus,
            check_interval_s=config.check_interval_s,
            max_consecutive_errors=config.max_consecutive_errors,
            min_action_interval_s=config.min_action_interval_s,
            default_target=config.default_target_temperature,
            default_hysteresis=config.default_hysteresis,
        )

        mqtt_bridge = None
        if config.enable_mqtt:
            mqtt_bridge = MQTTBridge.from_config(config, control_loop, event_bus)
        else:
            logger.info("MQTT bridge disabled by configuration")

        container = cls(
            config=config,
            event_bus=event_bus,
            settings_store=settings_store,
            hardware=hardware,
            control_loop=control_loop,
            temperature_cache=TemperatureCache(hardware.sensor),
            mqtt_bridge=mqtt_bridge,
        )
        if start_services:
            container.start()
        logger.info("ServiceContainer built successfully.")
        return container

    def start(self) -> None:
        """Start background activity (broker connection, optional autostart)."""
        if self.mqtt_bridge is not None:
            self.mqtt_bridge.start()
        if self.config.autostart:
            logger.info("Autostart enabled, starting control loop")
            self.control_loop.start()

    def shutdown(self) -> None:
        """Release external resources before process exit; the relay is always left off."""
        if self._shutdown_complete:
            return
        self._shutdown_complete = True

        try:
            if not self.control_loop.stop():
                logger.warning("Control loop stopped but the relay-off command failed")
        except Exception as e:
            logger.warning("Failed to stop control loop: %s", e)

        if self.mqtt_bridge is not None:
            try:
                self.mqtt_bridge.close()
                logger.info("✓ MQTT bridge stopped")
            except Exception as e:
                logger.warning("Failed to stop MQTT bridge: %s", e)

        try:
            self.hardware.cleanup()
        except Exception as e:
            logger.warning("Failed to release hardware: %s", e)

        self.event_bus.wait_until_idle(timeout=1.0)
        logger.info("ServiceContainer shutdown complete.")
