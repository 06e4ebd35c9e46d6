import json
import math
import threading
import time
from unittest.mock import Mock

import pytest

from thermostat.domain.exceptions import RangeError
from thermostat.enums.common import ControlLoopStatus, ThermostatMode


def _start_heating(loop, sensor, clock, temperature=19.0):
    sensor.value = temperature
    clock.advance(30)
    assert loop.start() is True
    loop.tick()


def test_heats_below_deadband_and_stops_at_target(loop, sensor, relay, clock):
    _start_heating(loop, sensor, clock)

    snapshot = loop.get_snapshot()
    assert snapshot.current_temperature == 19.0
    assert snapshot.is_heating is True
    assert relay.get_state() is True
    assert snapshot.mode is ThermostatMode.HEAT

    sensor.value = 22.1
    clock.advance(30)
    loop.tick()

    snapshot = loop.get_snapshot()
    assert snapshot.is_heating is False
    assert relay.get_state() is False
    assert snapshot.status is ControlLoopStatus.IDLE


def test_no_toggle_inside_deadband(loop, sensor, relay, clock):
    sensor.value = 21.0  # lower limit is 20.5
    clock.advance(60)
    loop.start()
    loop.tick()

    assert loop.get_snapshot().is_heating is False
    assert relay.write_count == 0


def test_keeps_heating_until_target_reached(loop, sensor, clock):
    _start_heating(loop, sensor, clock)

    sensor.value = 21.9
    clock.advance(60)
    loop.tick()

    assert loop.get_snapshot().is_heating is True


def test_minimum_action_interval_defers_toggle(loop, sensor, relay, clock):
    _start_heating(loop, sensor, clock)

    sensor.value = 22.5
    clock.advance(10)
    loop.tick()
    assert loop.get_snapshot().is_heating is True
    assert relay.get_state() is True

    clock.advance(20)
    loop.tick()
    assert loop.get_snapshot().is_heating is False


def test_minimum_action_interval_counts_from_construction(loop, sensor, relay, clock):
    sensor.value = 19.0
    loop.start()
    loop.tick()
    assert loop.get_snapshot().is_heating is False
    assert relay.write_count == 0

    clock.advance(29)
    loop.tick()
    assert loop.get_snapshot().is_heating is False

    clock.advance(1)
    loop.tick()
    assert loop.get_snapshot().is_heating is True


def test_start_does_not_reset_interval_clock(loop, sensor, clock):
    clock.advance(20)
    loop.start()
    loop.stop()
    clock.advance(10)
    sensor.value = 19.0
    loop.start()
    loop.tick()

    assert loop.get_snapshot().is_heating is True


def test_safety_shutdown_after_consecutive_errors(loop, sensor, relay, clock, event_bus):
    observer = Mock()
    loop.on_critical_error(observer)
    _start_heating(loop, sensor, clock)

    sensor.always_fail = True
    for _ in range(4):
        loop.tick()
    snapshot = loop.get_snapshot()
    assert snapshot.is_running is True
    assert snapshot.consecutive_error_count == 4
    assert snapshot.last_error == "sensor unplugged"

    loop.tick()
    snapshot = loop.get_snapshot()
    assert snapshot.is_running is False
    assert snapshot.is_heating is False
    assert snapshot.status is ControlLoopStatus.FAULTED
    assert snapshot.consecutive_error_count == 5
    assert "Safety shutdown" in snapshot.last_error
    assert relay.get_state() is False

    # Further ticks are no-ops and never re-announce the shutdown
    loop.tick()
    assert event_bus.wait_until_idle(2.0)
    observer.assert_called_once()
    payload = observer.call_args[0][0]
    assert payload["consecutive_errors"] == 5
    assert payload["relay_off_confirmed"] is True


def test_success_resets_error_counter(loop, sensor, clock):
    _start_heating(loop, sensor, clock)
    sensor.failures = 3
    for _ in range(3):
        loop.tick()
    assert loop.get_snapshot().consecutive_error_count == 3

    loop.tick()
    snapshot = loop.get_snapshot()
    assert snapshot.consecutive_error_count == 0
    assert snapshot.is_running is True


def test_failed_actuator_command_leaves_state_and_retries(loop, sensor, relay, clock):
    relay.fail_writes = True
    _start_heating(loop, sensor, clock)

    snapshot = loop.get_snapshot()
    assert snapshot.is_heating is False
    assert snapshot.last_error == "Failed to switch heating on"

    relay.fail_writes = False
    loop.tick()
    assert loop.get_snapshot().is_heating is True


def test_start_tolerates_initial_read_failure(loop, sensor):
    sensor.failures = 1

    assert loop.start() is True

    snapshot = loop.get_snapshot()
    assert snapshot.is_running is True
    assert snapshot.last_error == "transient read failure"
    assert snapshot.consecutive_error_count == 0


def test_start_is_idempotent(loop):
    assert loop.start() is True
    assert loop.start() is True
    assert loop.is_running


def test_start_rejects_out_of_range_config_before_changing_state(loop):
    with pytest.raises(RangeError):
        loop.start(target=31.0)
    with pytest.raises(RangeError):
        loop.start(hysteresis=0)

    snapshot = loop.get_snapshot()
    assert snapshot.is_running is False
    assert snapshot.target_temperature == 22.0
    assert snapshot.hysteresis == 1.5


def test_start_merges_config(loop):
    loop.start(target=18.0, hysteresis=0.5)

    config = loop.get_config()
    assert config["targetTemperature"] == 18.0
    assert config["hysteresis"] == 0.5
    assert config["maxConsecutiveErrors"] == 5
    assert config["minActionIntervalMs"] == 30000


@pytest.mark.parametrize("value", [4.9, 30.1, -1, math.nan, math.inf, True, "22", None])
def test_set_target_rejects_invalid_values(loop, value):
    with pytest.raises(RangeError):
        loop.set_target(value)
    assert loop.get_snapshot().target_temperature == 22.0


@pytest.mark.parametrize("value", [5, 30, 21.5])
def test_set_target_accepts_bounds(loop, value):
    loop.set_target(value)
    assert loop.get_snapshot().target_temperature == float(value)


def test_set_target_persists_and_reevaluates(loop, sensor, clock, settings_path):
    sensor.value = 21.0
    clock.advance(30)
    loop.start()
    loop.tick()
    assert loop.get_snapshot().is_heating is False

    loop.set_target(25.0)

    assert loop.get_snapshot().is_heating is True
    with open(settings_path, encoding="utf-8") as fh:
        stored = json.load(fh)
    assert stored["targetTemperature"]["value"] == 25.0


def test_set_target_while_stopped_does_not_touch_relay(loop, relay):
    loop.set_target(28.0)
    assert relay.write_count == 0


def test_persistence_failure_is_not_raised(make_loop, settings_store):
    settings_store.persist_target = Mock(side_effect=OSError("read-only filesystem"))
    loop = make_loop()

    loop.set_target(23.0)

    assert loop.get_snapshot().target_temperature == 23.0


@pytest.mark.parametrize("value", [0, -0.5, 5.1, math.nan, False])
def test_set_hysteresis_rejects_invalid_values(loop, value):
    with pytest.raises(RangeError):
        loop.set_hysteresis(value)
    assert loop.get_snapshot().hysteresis == 1.5


def test_set_hysteresis_persists(loop, settings_path):
    loop.set_hysteresis(5)

    assert loop.get_snapshot().hysteresis == 5.0
    with open(settings_path, encoding="utf-8") as fh:
        assert json.load(fh)["targetTemperature"]["hysteresis"] == 5.0


def test_initial_settings_come_from_store(make_loop, settings_store):
    settings_store.persist_target(19.5)
    settings_store.persist_hysteresis(0.8)

    loop = make_loop()

    snapshot = loop.get_snapshot()
    assert snapshot.target_temperature == 19.5
    assert snapshot.hysteresis == 0.8


def test_stop_forces_relay_off(loop, sensor, relay, clock):
    _start_heating(loop, sensor, clock)

    assert loop.stop() is True

    snapshot = loop.get_snapshot()
    assert snapshot.is_running is False
    assert snapshot.is_heating is False
    assert relay.get_state() is False
    assert snapshot.mode is ThermostatMode.OFF


def test_stop_when_stopped_is_noop(loop, relay):
    assert loop.stop() is True
    assert relay.write_count == 0


def test_stop_reports_failed_relay_off(loop, sensor, relay, clock):
    _start_heating(loop, sensor, clock)
    relay.fail_writes = True

    assert loop.stop() is False

    snapshot = loop.get_snapshot()
    assert snapshot.is_running is False
    assert snapshot.is_heating is False
    assert snapshot.last_error == "Failed to switch heating off"


def test_reset_recovers_faulted_loop(loop, sensor, clock):
    _start_heating(loop, sensor, clock)
    sensor.always_fail = True
    for _ in range(5):
        loop.tick()
    assert loop.status is ControlLoopStatus.FAULTED

    assert loop.reset() is True

    snapshot = loop.get_snapshot()
    assert snapshot.status is ControlLoopStatus.STOPPED
    assert snapshot.consecutive_error_count == 0
    assert snapshot.last_error is None


def test_reset_restarts_running_loop_with_same_config(loop, sensor, clock):
    loop.start(target=24.0, hysteresis=1.0)
    sensor.failures = 2
    loop.tick()
    loop.tick()

    assert loop.reset() is True

    snapshot = loop.get_snapshot()
    assert snapshot.is_running is True
    assert snapshot.consecutive_error_count == 0
    assert snapshot.target_temperature == 24.0
    assert snapshot.hysteresis == 1.0


def test_override_relay_refuses_on_while_stopped(loop, relay):
    assert loop.override_relay(True) is False
    assert relay.get_state() is False
    assert loop.get_snapshot().is_heating is False


def test_override_relay_stamps_action_time(loop, sensor, relay, clock):
    sensor.value = 21.0
    clock.advance(30)
    loop.start()

    assert loop.override_relay(True) is True
    assert relay.get_state() is True

    sensor.value = 23.0
    loop.tick()
    assert loop.get_snapshot().is_heating is True

    clock.advance(30)
    loop.tick()
    assert loop.get_snapshot().is_heating is False


def test_snapshot_is_a_copy(loop):
    snapshot = loop.get_snapshot()
    snapshot.target_temperature = 10.0
    snapshot.is_running = True

    fresh = loop.get_snapshot()
    assert fresh.target_temperature == 22.0
    assert fresh.is_running is False


def test_timer_drives_ticks(make_loop, sensor, relay):
    loop = make_loop(check_interval_s=0.02, min_action_interval_s=0)
    sensor.value = 19.0
    loop.start()

    deadline = time.monotonic() + 2.0
    while not relay.get_state() and time.monotonic() < deadline:
        time.sleep(0.01)

    assert relay.get_state() is True
    assert loop.get_health_status()["tick_count"] >= 1
    assert loop.stop() is True
    assert relay.get_state() is False


def _fault(loop, sensor):
    sensor.always_fail = True
    for _ in range(5):
        loop.tick()
    assert loop.status is ControlLoopStatus.FAULTED


def test_stop_switches_relay_off_when_safety_shutdown_write_failed(loop, sensor, relay, clock, event_bus):
    observer = Mock()
    loop.on_critical_error(observer)
    _start_heating(loop, sensor, clock)
    relay.fail_writes = True

    _fault(loop, sensor)
    assert relay.get_state() is True
    assert event_bus.wait_until_idle(2.0)
    assert observer.call_args[0][0]["relay_off_confirmed"] is False

    relay.fail_writes = False
    assert loop.stop() is True
    assert relay.get_state() is False
    assert loop.get_snapshot().is_heating is False


def test_stop_while_faulted_reports_failed_relay_off(loop, sensor, relay, clock):
    _start_heating(loop, sensor, clock)
    relay.fail_writes = True
    _fault(loop, sensor)

    assert loop.stop() is False
    assert relay.get_state() is True
    assert loop.get_snapshot().last_error == "Failed to switch heating off"


def test_set_target_takes_fresh_reading_before_deciding(loop, sensor, relay, clock):
    sensor.failures = 1
    clock.advance(30)
    loop.start()
    assert loop.get_snapshot().current_temperature == 0.0

    sensor.value = 25.0
    loop.set_target(22.0)

    snapshot = loop.get_snapshot()
    assert snapshot.current_temperature == 25.0
    assert snapshot.is_heating is False
    assert relay.get_state() is False


def test_set_target_skips_decision_when_read_fails(loop, sensor, relay, clock):
    sensor.failures = 1
    clock.advance(30)
    loop.start()
    sensor.always_fail = True

    loop.set_target(28.0)

    snapshot = loop.get_snapshot()
    assert snapshot.target_temperature == 28.0
    assert snapshot.is_heating is False
    assert snapshot.consecutive_error_count == 0
    assert snapshot.last_error == "sensor unplugged"
    assert relay.write_count == 0


def test_start_refused_while_faulted_until_reset(loop, sensor, clock):
    _start_heating(loop, sensor, clock)
    _fault(loop, sensor)

    assert loop.start() is False
    snapshot = loop.get_snapshot()
    assert snapshot.status is ControlLoopStatus.FAULTED
    assert "Safety shutdown" in snapshot.last_error

    sensor.always_fail = False
    assert loop.reset() is True
    assert loop.start() is True
    assert loop.status is not ControlLoopStatus.FAULTED


def test_safety_shutdown_stops_timer_thread(make_loop, sensor, relay):
    loop = make_loop(check_interval_s=0.02)
    sensor.always_fail = True
    loop.start()

    deadline = time.monotonic() + 2.0
    while loop.status is not ControlLoopStatus.FAULTED and time.monotonic() < deadline:
        time.sleep(0.01)
    assert loop.status is ControlLoopStatus.FAULTED

    ticks = loop.get_health_status()["tick_count"]
    time.sleep(0.1)

    health = loop.get_health_status()
    assert health["tick_count"] == ticks == 5
    assert health["timer_alive"] is False
    assert not any(t.name == "ControlLoopTick" and t.is_alive() for t in threading.enumerate())
    assert relay.get_state() is False
