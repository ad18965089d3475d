from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Iterable, Optional, Protocol, Sequence

from .models import SensorEvent, SensorKind, SensorReading, SensorSample, StepEvent

logger = logging.getLogger(__name__)


SensorCallback = Callable[[int, Sequence[float]], None]


class SensorSource(Protocol):
    """Callback-based sensor provider (device driver, recording player, test fake).

    Callbacks receive ``(timestamp_ns, values)`` and may be invoked from any
    thread. Every ``register_listener`` must be matched by ``unregister_listener``.
    """

    def is_step_detection_supported(self) -> bool:
        ...

    def register_listener(
        self,
        kind: SensorKind,
        callback: SensorCallback,
        sampling_period_us: Optional[int] = None,
    ) -> None:
        ...

    def unregister_listener(self, kind: SensorKind, callback: SensorCallback) -> None:
        ...

    def flush(self, kind: SensorKind) -> None:
        ...


class SensorStream:
    """Bridges sensor callbacks into an asyncio queue consumed with ``async for``.

    The delivering thread never blocks: events are handed to the event loop with
    ``call_soon_threadsafe`` and buffered in an unbounded queue.
    """

    def __init__(
        self,
        source: SensorSource,
        kinds: Iterable[SensorKind],
        *,
        loop: asyncio.AbstractEventLoop,
        sampling_period_us: Optional[int] = None,
    ) -> None:
        self._source = source
        self._kinds = list(kinds)
        self._loop = loop
        self._sampling_period_us = sampling_period_us
        self._queue: asyncio.Queue[SensorEvent] = asyncio.Queue()
        self._callbacks: Dict[SensorKind, SensorCallback] = {}
        self._closed = False

    def _make_callback(self, kind: SensorKind) -> SensorCallback:
        def _on_event(timestamp_ns: int, values: Sequence[float]) -> None:
            if self._closed:
                return
            try:
                if kind is SensorKind.STEP_DETECTOR:
                    event: SensorEvent = StepEvent(timestamp_ns=int(timestamp_ns))
                else:
                    event = SensorReading(kind=kind, sample=SensorSample.from_values(timestamp_ns, values))
            except (TypeError, ValueError) as exc:
                logger.warning("Dropping malformed %s event at %s: %s", kind.value, timestamp_ns, exc)
                return
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
            except RuntimeError:
                # Event loop already closed; the stream is being torn down.
                logger.debug("Dropping %s event after loop shutdown", kind.value)

        return _on_event

    def open(self) -> None:
        try:
            for kind in self._kinds:
                callback = self._make_callback(kind)
                if kind is not SensorKind.STEP_DETECTOR:
                    # Clear readings buffered by the driver from a previous session.
                    self._source.flush(kind)
                self._source.register_listener(kind, callback, self._sampling_period_us)
                self._callbacks[kind] = callback
                logger.debug("Registered %s listener", kind.value)
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        self._closed = True
        for kind, callback in list(self._callbacks.items()):
            try:
                self._source.unregister_listener(kind, callback)
                logger.debug("Unregistered %s listener", kind.value)
            except Exception as exc:  # noqa: BLE001 - keep releasing the remaining listeners
                logger.error("Failed to unregister %s listener: %s", kind.value, exc)
        self._callbacks.clear()

    def __aiter__(self) -> "SensorStream":
        return self

    async def __anext__(self) -> SensorEvent:
        return await self._queue.get()


@asynccontextmanager
async def open_sensor_stream(
    source: SensorSource,
    kinds: Iterable[SensorKind],
    *,
    sampling_period_us: Optional[int] = None,
) -> AsyncIterator[SensorStream]:
    """Register listeners on entry and unregister them on exit, including on cancellation."""
    stream = SensorStream(
        source,
        kinds,
        loop=asyncio.get_running_loop(),
        sampling_period_us=sampling_period_us,
    )
    stream.open()
    try:
        yield stream
    finally:
        stream.close()
