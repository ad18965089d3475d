from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError, field_validator

from ..exceptions import RecordingFormatError
from .decompression import RecordingDecompressor
from .models import SENSOR_TYPE_TO_KIND, SensorKind

logger = logging.getLogger(__name__)


class SensorValue(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None


class RecordedSensorData(BaseModel):
    sensor_name: Optional[str] = None
    sensor_type: Optional[int] = None
    timestamp_ns: int
    values: SensorValue = SensorValue()
    accuracy: Optional[int] = None

    @field_validator("timestamp_ns")
    @classmethod
    def validate_timestamp(cls, v):
        if v < 0:
            raise ValueError("timestamp_ns must be non-negative")
        return v

    def sensor_kind(self) -> Optional[SensorKind]:
        if self.sensor_type is not None and self.sensor_type in SENSOR_TYPE_TO_KIND:
            return SENSOR_TYPE_TO_KIND[self.sensor_type]
        if self.sensor_name:
            return SENSOR_TYPE_TO_KIND.get(self.sensor_name.strip().lower())
        return None


class RecordedPacket(BaseModel):
    packet_seq_no: int = 0
    type: str = "sensor"
    sensor_data: list[RecordedSensorData]


@dataclass(frozen=True)
class RecordedEvent:
    kind: SensorKind
    timestamp_ns: int
    values: Tuple[float, ...]


def _event_values(item: RecordedSensorData, kind: SensorKind) -> Tuple[float, ...]:
    if kind is SensorKind.STEP_DETECTOR:
        return (1.0,)
    vals = item.values
    if vals.x is None or vals.y is None or vals.z is None:
        raise ValueError(f"{kind.value} reading at {item.timestamp_ns} is missing an axis")
    return (float(vals.x), float(vals.y), float(vals.z))


def parse_recording(text: str) -> List[RecordedEvent]:
    """Parse a JSON Lines session into events sorted by timestamp.

    Readings from sensors the pipeline does not use are skipped.
    """
    events: List[RecordedEvent] = []
    skipped = 0
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            packet = RecordedPacket(**json.loads(line))
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            raise RecordingFormatError(f"Invalid packet on line {line_no}: {exc}") from exc

        for item in packet.sensor_data:
            kind = item.sensor_kind()
            if kind is None:
                skipped += 1
                continue
            try:
                values = _event_values(item, kind)
            except ValueError as exc:
                raise RecordingFormatError(f"Line {line_no}: {exc}") from exc
            events.append(RecordedEvent(kind=kind, timestamp_ns=int(item.timestamp_ns), values=values))

    # Stable sort keeps per-sensor arrival order for equal timestamps.
    events.sort(key=lambda e: e.timestamp_ns)
    if skipped:
        logger.debug("Skipped %s readings from unused sensors", skipped)
    return events


def _compression_hint(path: Path) -> Optional[str]:
    suffix = path.suffix.lower()
    if suffix in (".gz", ".gzip"):
        return "gzip"
    if suffix == ".lz4":
        return "lz4"
    return None


def load_recording(path: Path) -> List[RecordedEvent]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing recording: {path}")

    data = RecordingDecompressor().decompress(path.read_bytes(), _compression_hint(path))
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RecordingFormatError(f"Recording is not UTF-8 text: {path}") from exc

    events = parse_recording(text)
    logger.info(
        "Loaded recording %s: %s events (%s steps)",
        path,
        len(events),
        sum(1 for e in events if e.kind is SensorKind.STEP_DETECTOR),
    )
    return events
