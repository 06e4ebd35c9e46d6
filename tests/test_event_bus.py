from unittest.mock import Mock

from thermostat.enums.events import ThermostatEvent
from thermostat.schemas.events import SafetyShutdownPayload
from thermostat.utils.event_bus import EventBus


def test_subscribe_and_publish():
    bus = EventBus()
    listener = Mock()
    bus.subscribe("test_event", listener)

    bus.publish("test_event", {"key": "value"})

    assert bus.wait_until_idle(2.0)
    listener.assert_called_once_with({"key": "value"})


def test_enum_topics_and_model_payloads_are_normalised():
    bus = EventBus()
    listener = Mock()
    bus.subscribe(ThermostatEvent.SAFETY_SHUTDOWN, listener)

    bus.publish(
        ThermostatEvent.SAFETY_SHUTDOWN,
        SafetyShutdownPayload(reason="sensor lost", consecutive_errors=5),
    )

    assert bus.wait_until_idle(2.0)
    payload = listener.call_args[0][0]
    assert isinstance(payload, dict)
    assert payload["reason"] == "sensor lost"


def test_multiple_subscribers_and_unsubscribe():
    bus = EventBus()
    first, second = Mock(), Mock()
    bus.subscribe("multi_event", first)
    unsubscribe = bus.subscribe("multi_event", second)

    unsubscribe()
    unsubscribe()
    bus.publish("multi_event", {"message": "Hello"})

    assert bus.wait_until_idle(2.0)
    first.assert_called_once_with({"message": "Hello"})
    second.assert_not_called()


def test_no_subscribers_does_not_start_workers():
    bus = EventBus()

    bus.publish("nobody_listens", {"x": 1})

    assert bus._workers_started is False


def test_failing_callback_does_not_stop_worker():
    bus = EventBus()
    listener = Mock()
    bus.subscribe("event", Mock(side_effect=RuntimeError("boom")))
    bus.subscribe("event", listener)

    bus.publish("event", 1)
    bus.publish("event", 2)

    assert bus.wait_until_idle(2.0)
    assert [call.args[0] for call in listener.call_args_list] == [1, 2]


def test_full_queue_records_drops():
    bus = EventBus(queue_size=1)
    bus._workers_started = True  # keep the queue from draining
    bus.subscribe("event", Mock())

    bus.publish("event", 1)
    bus.publish("event", 2)

    metrics = bus.get_metrics()
    assert metrics["dropped_events"] == 1
    assert metrics["queue_depth"] == 1
