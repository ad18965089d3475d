"""Sensor data models."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple, Union

import numpy as np


class SensorKind(str, Enum):
    STEP_DETECTOR = "step_detector"
    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"


# Platform sensor type ids, as found in recorded sessions.
SENSOR_TYPE_TO_KIND = {
    1: SensorKind.ACCELEROMETER,
    4: SensorKind.GYROSCOPE,
    18: SensorKind.STEP_DETECTOR,
    "accelerometer": SensorKind.ACCELEROMETER,
    "gyroscope": SensorKind.GYROSCOPE,
    "step_detector": SensorKind.STEP_DETECTOR,
}


def _as_float32(value: float) -> float:
    return float(np.float32(value))


@dataclass(frozen=True)
class SensorSample:
    """Single raw reading: sensor-clock timestamp and the x/y/z axes."""
    timestamp_ns: int
    axes: Tuple[float, float, float]

    @classmethod
    def from_values(cls, timestamp_ns: int, values: Sequence[float]) -> "SensorSample":
        """Build a sample from a source vector, keeping only its first 3 components."""
        if len(values) < 3:
            raise ValueError(f"Sensor vector needs at least 3 components, got {len(values)}")
        x, y, z = (_as_float32(v) for v in values[:3])
        return cls(timestamp_ns=int(timestamp_ns), axes=(x, y, z))


@dataclass(frozen=True)
class StepEvent:
    timestamp_ns: int


@dataclass(frozen=True)
class SensorReading:
    """A sample tagged with the sensor it came from."""
    kind: SensorKind
    sample: SensorSample


SensorEvent = Union[StepEvent, SensorReading]
