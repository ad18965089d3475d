import asyncio

import pytest

from gaitauth.authentication.collector import WindowCollector
from gaitauth.sensors.models import SensorKind, SensorReading, SensorSample, StepEvent


def _reading(kind, ts):
    return SensorReading(kind=kind, sample=SensorSample(ts, (1.0, 2.0, 3.0)))


def test_quota_requires_both_sensors():
    collector = WindowCollector(window_rows=2)
    collector.begin()

    assert collector.add(_reading(SensorKind.ACCELEROMETER, 1)) is False
    assert collector.add(_reading(SensorKind.ACCELEROMETER, 2)) is False
    assert collector.add(_reading(SensorKind.ACCELEROMETER, 3)) is False
    assert collector.add(_reading(SensorKind.GYROSCOPE, 1)) is False
    assert collector.add(_reading(SensorKind.GYROSCOPE, 2)) is True


def test_duplicate_timestamp_overwrites():
    collector = WindowCollector(window_rows=2)
    collector.begin()
    collector.add(_reading(SensorKind.ACCELEROMETER, 1))
    collector.add(SensorReading(SensorKind.ACCELEROMETER, SensorSample(1, (9.0, 9.0, 9.0))))

    assert len(collector.accelerometer) == 1
    assert collector.accelerometer[1].axes == (9.0, 9.0, 9.0)


def test_drain_hands_over_buffers_and_empties_collector():
    collector = WindowCollector(window_rows=1)
    collector.begin()
    collector.add(_reading(SensorKind.ACCELEROMETER, 1))
    collector.add(_reading(SensorKind.GYROSCOPE, 1))

    acc, gyr = collector.drain()

    assert list(acc) == [1]
    assert list(gyr) == [1]
    assert collector.active is False
    assert collector.accelerometer == {}
    assert collector.gyroscope == {}


def test_abandon_discard_and_keep():
    collector = WindowCollector(window_rows=5)
    collector.begin()
    collector.add(_reading(SensorKind.ACCELEROMETER, 1))
    collector.abandon(discard=False)
    assert collector.active is False
    assert len(collector.accelerometer) == 1

    collector.begin()
    collector.abandon(discard=True)
    assert collector.accelerometer == {}


def test_begin_twice_is_rejected():
    collector = WindowCollector()
    collector.begin()
    with pytest.raises(RuntimeError):
        collector.begin()


@pytest.mark.asyncio
async def test_collect_returns_once_quota_is_met():
    async def stream():
        yield StepEvent(0)
        for ts in (1, 2):
            yield _reading(SensorKind.ACCELEROMETER, ts)
            yield _reading(SensorKind.GYROSCOPE, ts)
        raise AssertionError("stream consumed past the quota")

    collector = WindowCollector(window_rows=2)
    collector.begin()
    acc, gyr = await asyncio.wait_for(collector.collect(stream()), timeout=1.0)

    assert sorted(acc) == [1, 2]
    assert sorted(gyr) == [1, 2]


@pytest.mark.asyncio
async def test_collect_raises_when_stream_ends_early():
    async def stream():
        yield _reading(SensorKind.ACCELEROMETER, 1)

    collector = WindowCollector(window_rows=2)
    collector.begin()
    with pytest.raises(RuntimeError):
        await collector.collect(stream())
