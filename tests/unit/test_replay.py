import threading

import pytest

from gaitauth.exceptions import CapabilityUnsupported
from gaitauth.sensors.models import SensorKind
from gaitauth.sensors.recording import RecordedEvent
from gaitauth.sensors.replay import ReplaySensorSource

MS = 1_000_000


def _events():
    events = [RecordedEvent(SensorKind.ACCELEROMETER, i * 10 * MS, (float(i), 0.0, 0.0)) for i in range(10)]
    events.append(RecordedEvent(SensorKind.STEP_DETECTOR, 45 * MS, (1.0,)))
    return events


def test_step_support_follows_recording_content():
    assert ReplaySensorSource(_events()).is_step_detection_supported() is True
    no_steps = [e for e in _events() if e.kind is not SensorKind.STEP_DETECTOR]
    assert ReplaySensorSource(no_steps).is_step_detection_supported() is False


def test_step_listener_requires_step_events():
    no_steps = [e for e in _events() if e.kind is not SensorKind.STEP_DETECTOR]
    source = ReplaySensorSource(no_steps)
    with pytest.raises(CapabilityUnsupported):
        source.register_listener(SensorKind.STEP_DETECTOR, lambda ts, v: None)
    assert source.listener_count() == 0


def test_invalid_speed_is_rejected():
    with pytest.raises(ValueError):
        ReplaySensorSource(_events(), speed=0)


def test_playback_delivers_to_registered_listeners():
    source = ReplaySensorSource(_events(), speed=50.0)
    received = []
    lock = threading.Lock()

    def on_acc(ts, values):
        with lock:
            received.append((ts, tuple(values)))

    source.register_listener(SensorKind.ACCELEROMETER, on_acc)
    try:
        assert source.finished.wait(timeout=5.0)
    finally:
        source.close()

    assert [ts for ts, _ in received] == [i * 10 * MS for i in range(10)]
    assert source.listener_count(SensorKind.ACCELEROMETER) == 1


def test_sampling_period_decimates_readings():
    source = ReplaySensorSource(_events(), speed=50.0)
    received = []
    # 25ms period over 10ms spaced readings keeps every third one
    source.register_listener(SensorKind.ACCELEROMETER, lambda ts, v: received.append(ts), sampling_period_us=25_000)
    try:
        assert source.finished.wait(timeout=5.0)
    finally:
        source.close()

    assert received == [0, 30 * MS, 60 * MS, 90 * MS]


def test_unregistered_listener_receives_nothing():
    source = ReplaySensorSource(_events(), speed=1.0)
    received = []

    def on_step(ts, values):
        received.append(ts)

    source.register_listener(SensorKind.STEP_DETECTOR, on_step)
    source.unregister_listener(SensorKind.STEP_DETECTOR, on_step)
    try:
        assert source.finished.wait(timeout=5.0)
    finally:
        source.close()

    assert source.listener_count() == 0
    assert received == []


def test_listener_errors_do_not_stop_playback():
    source = ReplaySensorSource(_events(), speed=50.0)
    received = []

    def failing(ts, values):
        raise RuntimeError("listener bug")

    source.register_listener(SensorKind.ACCELEROMETER, failing)
    source.register_listener(SensorKind.ACCELEROMETER, lambda ts, v: received.append(ts))
    try:
        assert source.finished.wait(timeout=5.0)
    finally:
        source.close()

    assert len(received) == 10


def test_close_stops_looping_playback():
    source = ReplaySensorSource(_events(), speed=1.0, loop=True)
    source.register_listener(SensorKind.ACCELEROMETER, lambda ts, v: None)
    source.close()

    assert source.finished.wait(timeout=5.0)


def test_flush_resets_decimation_for_registered_listeners():
    # No events: playback never starts, readings are pushed by hand.
    source = ReplaySensorSource([])
    received = []
    source.register_listener(SensorKind.GYROSCOPE, lambda ts, v: received.append(ts), sampling_period_us=25_000)

    def push(ts):
        source._dispatch(RecordedEvent(SensorKind.GYROSCOPE, ts, (0.0, 0.0, 0.0)), ts)

    push(0)
    push(10 * MS)
    source.flush(SensorKind.GYROSCOPE)
    push(20 * MS)
    push(30 * MS)

    assert received == [0, 20 * MS]
