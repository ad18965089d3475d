from __future__ import annotations

import logging
from typing import AsyncIterable, Dict, Tuple

from ..sensors.models import SensorEvent, SensorKind, SensorReading, SensorSample

logger = logging.getLogger(__name__)


SensorBuffer = Dict[int, SensorSample]


class WindowCollector:
    """Buffers accelerometer and gyroscope samples for one capture cycle.

    Buffers are keyed by sensor timestamp; a repeated timestamp overwrites the
    earlier sample. The window is complete once both buffers hold at least
    ``window_rows`` entries, checked after every insert.
    """

    def __init__(self, window_rows: int = 200) -> None:
        self.window_rows = int(window_rows)
        self.accelerometer: SensorBuffer = {}
        self.gyroscope: SensorBuffer = {}
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def quota_reached(self) -> bool:
        return len(self.accelerometer) >= self.window_rows and len(self.gyroscope) >= self.window_rows

    def begin(self) -> None:
        if self._active:
            raise RuntimeError("A capture cycle is already collecting")
        self._active = True
        logger.debug(
            "Collection started (carried over: acc=%s gyr=%s)",
            len(self.accelerometer),
            len(self.gyroscope),
        )

    def add(self, reading: SensorReading) -> bool:
        if reading.kind is SensorKind.ACCELEROMETER:
            self.accelerometer[reading.sample.timestamp_ns] = reading.sample
        elif reading.kind is SensorKind.GYROSCOPE:
            self.gyroscope[reading.sample.timestamp_ns] = reading.sample
        else:
            logger.debug("Ignoring %s reading in window collector", reading.kind.value)
        return self.quota_reached

    def drain(self) -> Tuple[SensorBuffer, SensorBuffer]:
        """Hand over both buffers and leave the collector empty for the next cycle."""
        acc, gyr = self.accelerometer, self.gyroscope
        self.accelerometer, self.gyroscope = {}, {}
        self._active = False
        logger.info("Collection limit reached: acc=%s gyr=%s samples", len(acc), len(gyr))
        return acc, gyr

    def abandon(self, discard: bool = True) -> None:
        self._active = False
        if discard:
            logger.info(
                "Collection abandoned, discarding acc=%s gyr=%s samples",
                len(self.accelerometer),
                len(self.gyroscope),
            )
            self.clear()
        else:
            logger.info(
                "Collection abandoned, keeping acc=%s gyr=%s samples for the next cycle",
                len(self.accelerometer),
                len(self.gyroscope),
            )

    def clear(self) -> None:
        self.accelerometer.clear()
        self.gyroscope.clear()

    async def collect(self, stream: AsyncIterable[SensorEvent]) -> Tuple[SensorBuffer, SensorBuffer]:
        async for event in stream:
            if isinstance(event, SensorReading) and self.add(event):
                return self.drain()
        raise RuntimeError("Sensor stream ended before the window filled")
