"""
ControlLoop: drives the heating relay from the temperature sensor.

Responsibilities:
- Periodic sensing on a single tick thread (ticks never overlap)
- Hysteresis (deadband) decision with a minimum-action interval between relay toggles
- Fault containment: consecutive sensor errors are counted and, at the limit,
  the loop shuts itself down with the relay off and notifies observers once
- Validated setpoint/hysteresis updates, persisted through the settings store

All reads and writes of ``ThermostatState`` go through ``self._lock`` so the
tick thread, MQTT callbacks and HTTP requests never interleave partial updates.
"""

import logging
import math
import threading
import time
from typing import Any, Callable

from thermostat.config import MAX_HYSTERESIS, MAX_TARGET_TEMPERATURE, MIN_TARGET_TEMPERATURE
from thermostat.domain.exceptions import RangeError, SensorError
from thermostat.domain.state import ThermostatState
from thermostat.enums.common import ControlLoopStatus
from thermostat.enums.events import ThermostatEvent
from thermostat.hardware.actuators.relays.relay_base import RelayBase
from thermostat.hardware.sensors.drivers.base import TemperatureSensor
from thermostat.schemas.events import SafetyShutdownPayload
from thermostat.utils.concurrency import RepeatingTimer, synchronized
from thermostat.utils.event_bus import EventBus
from thermostat.utils.time import iso_now, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_S = 3.0
DEFAULT_MAX_CONSECUTIVE_ERRORS = 5
DEFAULT_MIN_ACTION_INTERVAL_S = 30.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_target(value: Any) -> float:
    if not _is_number(value) or not MIN_TARGET_TEMPERATURE <= value <= MAX_TARGET_TEMPERATURE:
        raise RangeError(
            f"Target temperature {value!r} out of range "
            f"(must be between {MIN_TARGET_TEMPERATURE:g} and {MAX_TARGET_TEMPERATURE:g}°C)"
        )
    return float(value)


def validate_hysteresis(value: Any) -> float:
    if not _is_number(value) or not 0 < value <= MAX_HYSTERESIS:
        raise RangeError(f"Hysteresis {value!r} out of range (must be > 0 and <= {MAX_HYSTERESIS:g}°C)")
    return float(value)


class ControlLoop:
    """
    Owns the thermostat state and the tick timer.

    Constructed once at process start and shared by reference with the HTTP
    layer and the MQTT bridge.
    """

    def __init__(
        self,
        sensor: TemperatureSensor,
        relay: RelayBase,
        settings_store: Any = None,
        event_bus: EventBus | None = None,
        *,
        check_interval_s: float = DEFAULT_CHECK_INTERVAL_S,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
        min_action_interval_s: float = DEFAULT_MIN_ACTION_INTERVAL_S,
        default_target: float = 22.0,
        default_hysteresis: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            sensor: Temperature source (real or simulated)
            relay: Heating relay (real or simulated)
            settings_store: Supplies/persists target and hysteresis (optional)
            event_bus: Channel for safety-shutdown notifications
            check_interval_s: Seconds between ticks
            max_consecutive_errors: Failed reads that trigger a safety shutdown
            min_action_interval_s: Minimum seconds between two relay toggles
            clock: Monotonic clock, injectable for tests
        """
        self.sensor = sensor
        self.relay = relay
        self.settings_store = settings_store
        self.event_bus = event_bus or EventBus()
        self.check_interval_s = check_interval_s
        self.max_consecutive_errors = max_consecutive_errors
        self.min_action_interval_s = min_action_interval_s
        self._clock = clock

        self._lock = threading.RLock()
        self._timer: RepeatingTimer | None = None

        target, hysteresis = self._load_initial_settings(default_target, default_hysteresis)
        self._state = ThermostatState(target_temperature=target, hysteresis=hysteresis)

        # The toggle guard starts counting at construction, not at start()
        self._last_action_at = clock()

        self.tick_count = 0
        self.control_action_count = 0
        self.safety_shutdown_count = 0

        logger.info(
            "ControlLoop initialized (target=%.1f°C, hysteresis=%.1f°C, interval=%ss)",
            target,
            hysteresis,
            check_interval_s,
        )

    def _load_initial_settings(self, default_target: float, default_hysteresis: float) -> tuple[float, float]:
        if self.settings_store is None:
            return default_target, default_hysteresis
        try:
            target, hysteresis = self.settings_store.load_initial_target()
            return validate_target(target), validate_hysteresis(hysteresis)
        except Exception as e:
            logger.warning("Could not load stored settings, using defaults: %s", e)
            return default_target, default_hysteresis

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, target: float | None = None, hysteresis: float | None = None) -> bool:
        """
        Start periodic control.

        Returns True if running afterwards (including when it already was).
        A safety shutdown is latched: a faulted loop returns False here until
        reset() clears it.

        Raises:
            RangeError: If a supplied target/hysteresis is out of bounds.
        """
        with self._lock:
            if self._state.is_running:
                logger.info("Control loop already running")
                return True
            if self._state.faulted:
                logger.warning("Refusing to start: safety shutdown is latched until reset()")
                return False

            new_target = validate_target(target) if target is not None else None
            new_hysteresis = validate_hysteresis(hysteresis) if hysteresis is not None else None

            try:
                if new_target is not None:
                    self._state.target_temperature = new_target
                if new_hysteresis is not None:
                    self._state.hysteresis = new_hysteresis
                self._state.last_error = None
                self._state.consecutive_error_count = 0

                self._read_initial_temperature()

                timer = RepeatingTimer(self.check_interval_s, self.tick, name="ControlLoopTick")
                self._timer = timer
                self._state.is_running = True
                timer.start()
            except Exception as e:
                logger.exception("Failed to start control loop: %s", e)
                self._state.last_error = f"Failed to start thermostat: {e}"
                self._state.is_running = False
                self._cancel_timer(join=False)
                return False

            logger.info(
                "Control loop started (target=%.1f°C, hysteresis=%.1f°C)",
                self._state.target_temperature,
                self._state.hysteresis,
            )
            return True

    def stop(self) -> bool:
        """
        Stop periodic control and force the relay off.

        Returns False only when the forced relay-off command fails.
        A stopped loop still forces the relay off when it is faulted or the
        relay reports on (e.g. the safety-shutdown write failed).
        """
        with self._lock:
            if not self._state.is_running:
                if not (self._state.faulted or self._relay_reports_on()):
                    return True
                relay_off = self._force_relay_off()
                self._state.is_heating = False
                return relay_off
            timer = self._cancel_timer(join=False)
            relay_off = self._force_relay_off()
            self._state.is_heating = False
            self._state.is_running = False
            logger.info("Control loop stopped")

        if timer is not None:
            # Outside the lock so a tick waiting on it can finish and exit
            timer.cancel()
        return relay_off

    def reset(self) -> bool:
        """Stop, clear the error state, and restart only if the loop had been running."""
        with self._lock:
            was_running = self._state.is_running
            target = self._state.target_temperature
            hysteresis = self._state.hysteresis

        if not self.stop():
            logger.error("Reset aborted: relay could not be switched off")
            return False

        with self._lock:
            self._state.consecutive_error_count = 0
            self._state.last_error = None
            self._state.faulted = False
        logger.info("Control loop error state cleared")

        if was_running:
            return self.start(target, hysteresis)
        return True

    def _cancel_timer(self, join: bool) -> RepeatingTimer | None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel(join_timeout=5.0 if join else None)
        return timer

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self) -> None:
        """One control cycle: read, then decide. Called by the tick thread."""
        with self._lock:
            if not self._state.is_running:
                return
            self.tick_count += 1

            try:
                temperature = self._read_sensor()
            except SensorError as e:
                self._handle_sensor_error(e)
                return

            self._state.consecutive_error_count = 0
            self._state.current_temperature = temperature
            self._state.last_updated = utc_now()
            self._apply_hysteresis()

    def _read_sensor(self) -> float:
        try:
            value = self.sensor.read()
        except SensorError:
            raise
        except Exception as e:
            raise SensorError(f"Sensor read failed: {e}") from e
        if not _is_number(value):
            raise SensorError(f"Sensor returned invalid value {value!r}")
        return float(value)

    def _read_initial_temperature(self) -> None:
        try:
            temperature = self._read_sensor()
        except SensorError as e:
            # Tolerated at start; the next tick retries and counts failures
            self._state.last_error = str(e)
            logger.warning("Initial temperature read failed, starting anyway: %s", e)
            return
        self._state.current_temperature = temperature
        self._state.last_updated = utc_now()

    def _handle_sensor_error(self, error: SensorError) -> None:
        self._state.consecutive_error_count += 1
        self._state.last_error = str(error)
        logger.error(
            "[SENSOR] Consecutive error #%d: %s",
            self._state.consecutive_error_count,
            error,
        )
        if self._state.consecutive_error_count >= self.max_consecutive_errors:
            self._safety_shutdown(error)

    def _safety_shutdown(self, error: SensorError) -> None:
        count = self._state.consecutive_error_count
        self._cancel_timer(join=False)
        relay_off = self._force_relay_off()
        self._state.is_heating = False
        self._state.is_running = False
        self._state.faulted = True
        self.safety_shutdown_count += 1

        message = f"Safety shutdown after {count} consecutive sensor errors (last: {error})"
        self._state.last_error = message
        logger.critical(message)

        self.event_bus.publish(
            ThermostatEvent.SAFETY_SHUTDOWN,
            SafetyShutdownPayload(
                reason=message,
                consecutive_errors=count,
                last_error=str(error),
                relay_off_confirmed=relay_off,
                timestamp=iso_now(),
            ),
        )

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    def _apply_hysteresis(self) -> bool:
        """
        Deadband decision against the latest reading.

        Returns True when the relay was toggled.
        """
        state = self._state
        if not state.is_running:
            return False

        lower = state.target_temperature - state.hysteresis
        upper = state.target_temperature
        current = state.current_temperature

        if state.is_heating and current >= upper:
            desired = False
        elif not state.is_heating and current < lower:
            desired = True
        else:
            return False

        now = self._clock()
        elapsed = now - self._last_action_at
        if elapsed < self.min_action_interval_s:
            logger.debug(
                "Relay %s deferred: %.1fs since last toggle (minimum %.0fs)",
                "on" if desired else "off",
                elapsed,
                self.min_action_interval_s,
            )
            return False

        if not self._command_relay(desired):
            state.last_error = f"Failed to switch heating {'on' if desired else 'off'}"
            logger.error("%s at %.2f°C", state.last_error, current)
            return False

        state.is_heating = desired
        self._last_action_at = now
        self.control_action_count += 1
        if desired:
            logger.info("Heating on: %.2f°C below lower limit %.2f°C", current, lower)
        else:
            logger.info("Heating off: %.2f°C reached target %.2f°C", current, upper)
        return True

    def _command_relay(self, on: bool) -> bool:
        try:
            return bool(self.relay.set_state(on))
        except Exception as e:
            logger.error("Relay command %s raised: %s", "on" if on else "off", e)
            return False

    def _relay_reports_on(self) -> bool:
        try:
            return bool(self.relay.get_state())
        except Exception as e:
            logger.error("Relay state query failed, assuming on: %s", e)
            return True

    def _force_relay_off(self) -> bool:
        if self._command_relay(False):
            return True
        self._state.last_error = "Failed to switch heating off"
        logger.error("Forced relay-off failed")
        return False

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def set_target(self, value: float) -> None:
        """
        Update the setpoint, persist it, and re-evaluate immediately if running.

        The re-evaluation uses a fresh sensor reading; if that read fails the
        decision is left to the next tick.

        Raises:
            RangeError: If value is outside [5, 30].
        """
        target = validate_target(value)
        with self._lock:
            self._state.target_temperature = target
            logger.info("Target temperature set to %.1f°C", target)
            if self._state.is_running:
                self._reevaluate_with_fresh_reading()
        self._persist("persist_target", target)

    def _reevaluate_with_fresh_reading(self) -> None:
        try:
            temperature = self._read_sensor()
        except SensorError as e:
            # Not counted; the tick owns the error counter
            self._state.last_error = str(e)
            logger.warning("Skipping re-evaluation, sensor read failed: %s", e)
            return
        self._state.current_temperature = temperature
        self._state.last_updated = utc_now()
        self._apply_hysteresis()

    def set_hysteresis(self, value: float) -> None:
        """
        Raises:
            RangeError: If value is outside (0, 5].
        """
        hysteresis = validate_hysteresis(value)
        with self._lock:
            self._state.hysteresis = hysteresis
            logger.info("Hysteresis set to %.1f°C", hysteresis)
        self._persist("persist_hysteresis", hysteresis)

    def override_relay(self, on: bool) -> bool:
        """
        Drive the relay directly (manual override).

        Switching on is refused while the loop is stopped. A successful
        override counts as a toggle for the minimum-action interval.
        """
        with self._lock:
            if on and not self._state.is_running:
                logger.warning("Refusing to switch heating on while the thermostat is stopped")
                return False
            if not self._command_relay(on):
                self._state.last_error = f"Failed to switch heating {'on' if on else 'off'}"
                return False
            if self._state.is_heating != on:
                self._last_action_at = self._clock()
            self._state.is_heating = on
            logger.info("Relay manually switched %s", "on" if on else "off")
            return True

    def _persist(self, method: str, value: float) -> None:
        persist = getattr(self.settings_store, method, None)
        if persist is None:
            return
        try:
            persist(value)
        except Exception as e:
            logger.error("Failed to persist %s=%s: %s", method, value, e)

    # -------------------------------------------------------------------------
    # Observers / read side
    # -------------------------------------------------------------------------

    def on_critical_error(self, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Register a safety-shutdown observer; returns an unsubscribe function."""
        return self.event_bus.subscribe(ThermostatEvent.SAFETY_SHUTDOWN, callback)

    @synchronized
    def get_snapshot(self) -> ThermostatState:
        return self._state.copy()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.is_running

    @property
    def status(self) -> ControlLoopStatus:
        with self._lock:
            return self._state.status

    @synchronized
    def get_config(self) -> dict[str, Any]:
        return {
            "targetTemperature": self._state.target_temperature,
            "hysteresis": self._state.hysteresis,
            "checkIntervalMs": int(self.check_interval_s * 1000),
            "maxConsecutiveErrors": self.max_consecutive_errors,
            "minActionIntervalMs": int(self.min_action_interval_s * 1000),
        }

    @synchronized
    def get_health_status(self) -> dict[str, Any]:
        return {
            "status": self._state.status.value,
            "tick_count": self.tick_count,
            "control_actions": self.control_action_count,
            "safety_shutdowns": self.safety_shutdown_count,
            "consecutive_errors": self._state.consecutive_error_count,
            "last_error": self._state.last_error,
            "seconds_since_last_toggle": round(self._clock() - self._last_action_at, 1),
            "timer_alive": bool(self._timer and self._timer.is_alive),
        }
