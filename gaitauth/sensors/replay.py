"""Sensor source that plays a recorded session back through listener callbacks."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..exceptions import CapabilityUnsupported
from .models import SensorKind
from .recording import RecordedEvent, load_recording
from .source import SensorCallback

logger = logging.getLogger(__name__)


@dataclass
class _Listener:
    callback: SensorCallback
    period_ns: int
    last_ts: Optional[int] = None


class ReplaySensorSource:
    """Replays recorded readings on a daemon thread, like a hardware driver would.

    Readings are only delivered to listeners registered at the time they are
    played, so a collector that subscribes late misses earlier samples. The
    requested sampling period is honoured by dropping readings that arrive
    sooner than ``sampling_period_us`` after the last delivered one.
    """

    def __init__(self, events: Sequence[RecordedEvent], *, speed: float = 1.0, loop: bool = False) -> None:
        if float(speed) <= 0.0:
            raise ValueError(f"speed must be > 0, got {speed}")
        self._events: List[RecordedEvent] = sorted(events, key=lambda e: e.timestamp_ns)
        self._speed = float(speed)
        self._loop = bool(loop)
        self._listeners: Dict[SensorKind, List[_Listener]] = {kind: [] for kind in SensorKind}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_file(cls, path: Path, *, speed: float = 1.0, loop: bool = False) -> "ReplaySensorSource":
        return cls(load_recording(path), speed=speed, loop=loop)

    @property
    def finished(self) -> threading.Event:
        return self._finished

    def is_step_detection_supported(self) -> bool:
        return any(e.kind is SensorKind.STEP_DETECTOR for e in self._events)

    def register_listener(
        self,
        kind: SensorKind,
        callback: SensorCallback,
        sampling_period_us: Optional[int] = None,
    ) -> None:
        if kind is SensorKind.STEP_DETECTOR and not self.is_step_detection_supported():
            raise CapabilityUnsupported("Recording contains no step detector events")
        period_ns = int(sampling_period_us or 0) * 1000
        with self._lock:
            self._listeners[kind].append(_Listener(callback=callback, period_ns=period_ns))
        self._ensure_running()

    def unregister_listener(self, kind: SensorKind, callback: SensorCallback) -> None:
        with self._lock:
            self._listeners[kind] = [entry for entry in self._listeners[kind] if entry.callback is not callback]

    def flush(self, kind: SensorKind) -> None:
        """Reset decimation for listeners of ``kind`` already registered.

        Playback holds no per-sensor queue, so there is nothing pending to
        drop; a listener registered after the flush starts fresh anyway.
        The next reading after a flush is always delivered.
        """
        with self._lock:
            for listener in self._listeners[kind]:
                listener.last_ts = None

    def listener_count(self, kind: Optional[SensorKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._listeners[kind])
            return sum(len(v) for v in self._listeners.values())

    def close(self, timeout: float = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _ensure_running(self) -> None:
        with self._lock:
            if self._thread is not None or not self._events:
                return
            self._thread = threading.Thread(target=self._run, name="replay-sensor", daemon=True)
            self._thread.start()

    def _dispatch(self, event: RecordedEvent, timestamp_ns: int) -> None:
        due: List[SensorCallback] = []
        with self._lock:
            for listener in self._listeners[event.kind]:
                if (
                    listener.period_ns
                    and listener.last_ts is not None
                    and timestamp_ns - listener.last_ts < listener.period_ns
                ):
                    continue
                listener.last_ts = timestamp_ns
                due.append(listener.callback)
        for callback in due:
            try:
                callback(timestamp_ns, event.values)
            except Exception as exc:  # noqa: BLE001 - a listener error must not stop playback
                logger.error("Listener for %s failed: %s", event.kind.value, exc, exc_info=True)

    def _run(self) -> None:
        first_ts = self._events[0].timestamp_ns
        span_ns = self._events[-1].timestamp_ns - first_ts
        offset_ns = 0
        passes = 0
        logger.info("Replay started: %s events, speed=%.2fx, loop=%s", len(self._events), self._speed, self._loop)
        try:
            while not self._stop.is_set():
                started = time.monotonic()
                for event in self._events:
                    delay = (event.timestamp_ns - first_ts) / 1e9 / self._speed - (time.monotonic() - started)
                    if delay > 0 and self._stop.wait(delay):
                        return
                    if self._stop.is_set():
                        return
                    self._dispatch(event, event.timestamp_ns + offset_ns)
                passes += 1
                if not self._loop:
                    return
                # Keep timestamps monotonic across passes.
                offset_ns += span_ns + 1_000_000
        finally:
            self._finished.set()
            logger.info("Replay stopped after %s full pass(es)", passes)
