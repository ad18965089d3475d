from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Literal, Optional, Protocol, Set

from ..exceptions import (
    CapabilityUnsupported,
    DataShapeError,
    InferenceError,
    ModelLoadError,
    PersistenceError,
    ShapeMismatchError,
)
from ..gait_config import GaitConfig
from ..processing.pipeline import FeatureMatrix, build_feature_matrix
from ..sensors.models import SensorKind, StepEvent
from ..sensors.source import SensorSource, open_sensor_stream
from ..storage.enrollment_storage import EnrollmentStorage
from ..storage.result_storage import ResultStorage
from .collector import SensorBuffer, WindowCollector
from .walking import WalkingDetector

logger = logging.getLogger(__name__)


class UiState(str, Enum):
    STARTUP = "Startup"
    NOT_SUPPORTED = "NotSupported"
    SUPPORTED = "Supported"


class CyclePhase(str, Enum):
    IDLE = "Idle"
    COLLECTING = "Collecting"


Outcome = Literal[
    "enrolled",
    "compared",
    "abandoned",
    "shape_error",
    "comparison_failed",
    "persistence_failed",
    "sensor_failed",
    "failed",
]


@dataclass(frozen=True)
class CycleResult:
    outcome: Outcome
    score: Optional[float] = None
    rows: Optional[int] = None
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SimilarityComparer(Protocol):
    def compare(self, enrolled: FeatureMatrix, candidate: FeatureMatrix) -> Awaitable[float]:
        ...


ResultListener = Callable[[CycleResult], None]


class PipelineController:
    """Drives walking detection, window capture and enrollment/comparison.

    States: ``Startup -> NotSupported | Supported``; inside ``Supported`` the
    capture cycle alternates ``Idle <-> Collecting``. Transitions are driven
    by step events only. The countdown in ``remaining_time_display`` is
    advisory.

    The enrollment slot is guarded by one lock: saving, clearing and comparing
    never interleave.
    """

    def __init__(
        self,
        source: Optional[SensorSource],
        store: EnrollmentStorage,
        engine: SimilarityComparer,
        *,
        cfg: Optional[GaitConfig] = None,
        result_storage: Optional[ResultStorage] = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = 50,
    ) -> None:
        self.cfg = cfg or GaitConfig()
        self._source = source
        self._store = store
        self._engine = engine
        self._result_storage = result_storage
        self._clock = clock

        self.ui_state = UiState.STARTUP
        self.phase = CyclePhase.IDLE
        self.walking = False
        self.enrolled = False
        self.enabled = bool(enabled)
        self.remaining_time_display = "Seconds left: 0"
        self.last_result: Optional[CycleResult] = None
        self.history: Deque[CycleResult] = deque(maxlen=max(1, int(history_size)))

        self._detector = WalkingDetector(self.cfg.cadence)
        self._collector = WindowCollector(self.cfg.collection.window_rows)
        self._enrollment_lock = asyncio.Lock()
        self._result_listeners: List[ResultListener] = []
        self._cooldown_until: Optional[float] = None
        self._pending_writes: Set[asyncio.Task] = set()

        self._step_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None

    @property
    def source(self) -> Optional[SensorSource]:
        return self._source

    @property
    def detector(self) -> WalkingDetector:
        return self._detector

    @property
    def collector(self) -> WindowCollector:
        return self._collector

    @property
    def cycle_running(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    def add_result_listener(self, listener: ResultListener) -> None:
        self._result_listeners.append(listener)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ui_state": self.ui_state.value,
            "phase": self.phase.value,
            "walking": self.walking,
            "enrolled": self.enrolled,
            "enabled": self.enabled,
            "remaining_time_display": self.remaining_time_display,
            "step_count": self._detector.step_count,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

    # ------------------------------------------------------------------ lifecycle

    async def start(self) -> UiState:
        if self.ui_state is not UiState.STARTUP:
            return self.ui_state

        supported = False
        if self._source is not None:
            try:
                supported = bool(self._source.is_step_detection_supported())
            except CapabilityUnsupported as exc:
                logger.info("Step detection capability missing: %s", exc)
            except Exception as exc:  # noqa: BLE001 - a failing probe means unsupported
                logger.error("Step detection capability probe failed: %s", exc)

        if not supported:
            self.ui_state = UiState.NOT_SUPPORTED
            logger.warning("Step detection not supported; gait pipeline disabled")
            return self.ui_state

        self.ui_state = UiState.SUPPORTED
        logger.info("Step detection supported; checking enrollment")
        await self._refresh_enrolled()
        if self.enabled:
            self._start_acquisition()
        return self.ui_state

    async def stop(self) -> None:
        await self._stop_acquisition()
        await self.flush_results()

    async def flush_results(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        task = self._cycle_task
        if task is None or task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

    async def toggle_enabled(self) -> bool:
        self.enabled = not self.enabled
        logger.info("Pipeline %s", "enabled" if self.enabled else "disabled")
        if self.ui_state is UiState.SUPPORTED:
            if self.enabled:
                self._start_acquisition()
            else:
                await self._stop_acquisition()
        return self.enabled

    async def reset_enrollment(self) -> bool:
        async with self._enrollment_lock:
            try:
                await self._store.clear()
            except PersistenceError as exc:
                self._record(CycleResult("persistence_failed", message=str(exc)))
                return False
            self.enrolled = False
        logger.info("Enrolled data is deleted")
        return True

    def _start_acquisition(self) -> None:
        if self._step_task is None or self._step_task.done():
            self._step_task = asyncio.create_task(self._step_loop(), name="gait-steps")
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.create_task(self._timer_loop(), name="gait-timer")

    async def _stop_acquisition(self) -> None:
        tasks = [t for t in (self._cycle_task, self._step_task, self._timer_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._cycle_task = self._step_task = self._timer_task = None
        if self._collector.active:
            self._abandon_collection("pipeline stopped")
        self._detector.reset()
        self.walking = False
        self.phase = CyclePhase.IDLE
        self.remaining_time_display = "Paused"

    async def _refresh_enrolled(self) -> None:
        async with self._enrollment_lock:
            try:
                record = await self._store.load()
            except PersistenceError as exc:
                self.enrolled = False
                self._record(CycleResult("persistence_failed", message=str(exc)))
                return
            self.enrolled = record is not None
        logger.info("Enrollment present: %s", self.enrolled)

    # ------------------------------------------------------------------ walking

    async def _step_loop(self) -> None:
        assert self._source is not None
        while True:
            try:
                async with open_sensor_stream(self._source, [SensorKind.STEP_DETECTOR]) as stream:
                    async for event in stream:
                        if isinstance(event, StepEvent):
                            self._on_step(event.timestamp_ns)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - recover locally, back to idle
                logger.error("Step stream failed, resetting to idle: %s", exc, exc_info=True)
                self._detector.reset()
                self.walking = False
                self._abandon_cycle()
                await asyncio.sleep(float(self.cfg.timer.tick_sec))

    def _on_step(self, timestamp_ns: int) -> None:
        decision = self._detector.update(timestamp_ns)
        if decision is True:
            self.walking = True
            self._begin_cycle()
        elif decision is False:
            self.walking = False
            self._abandon_cycle()

    def _begin_cycle(self) -> None:
        if self.cycle_running:
            logger.debug("Capture cycle already running; ignoring walking confirmation")
            return
        if self._cooldown_until is not None and self._clock() < self._cooldown_until:
            logger.info("In post-comparison cooldown for %.1fs more", self._cooldown_until - self._clock())
            return
        self._collector.begin()
        self.phase = CyclePhase.COLLECTING
        logger.info("Started to collect data")
        self._cycle_task = asyncio.create_task(self._run_cycle(), name="gait-capture")

    def _abandon_cycle(self) -> None:
        if not self.cycle_running or not self._collector.active:
            return
        logger.info("Walking stopped before the window filled; abandoning capture")
        self._abandon_collection("walking stopped before the window filled")
        assert self._cycle_task is not None
        self._cycle_task.cancel()

    def _abandon_collection(self, reason: str) -> None:
        self._collector.abandon(discard=self.cfg.collection.discard_on_abandon)
        self.phase = CyclePhase.IDLE
        self._record(CycleResult("abandoned", message=reason))

    # ------------------------------------------------------------------ capture cycle

    async def _run_cycle(self) -> None:
        assert self._source is not None
        try:
            try:
                async with open_sensor_stream(
                    self._source,
                    [SensorKind.ACCELEROMETER, SensorKind.GYROSCOPE],
                    sampling_period_us=self.cfg.collection.sampling_period_us,
                ) as stream:
                    acc, gyr = await self._collector.collect(stream)
            except asyncio.CancelledError:
                if self._collector.active:
                    self._abandon_collection("capture cancelled")
                raise
            except Exception as exc:  # noqa: BLE001 - sensor failures reset to idle
                self._collector.abandon(discard=True)
                logger.error("Sensor stream failed during capture: %s", exc, exc_info=True)
                self.phase = CyclePhase.IDLE
                self._record(CycleResult("sensor_failed", message=str(exc)))
                return

            self.phase = CyclePhase.IDLE
            try:
                await self._complete_cycle(acc, gyr)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - never let a cycle crash the host
                logger.error("Capture cycle failed: %s", exc, exc_info=True)
                self._record(CycleResult("failed", message=str(exc)))
        finally:
            self.phase = CyclePhase.IDLE
            logger.info("Data collection window closed")

    async def _complete_cycle(self, acc: SensorBuffer, gyr: SensorBuffer) -> None:
        try:
            candidate = build_feature_matrix(
                acc,
                gyr,
                self.cfg.filter,
                window_rows=self.cfg.collection.window_rows,
            )
        except DataShapeError as exc:
            logger.warning("Discarding capture: %s", exc)
            self._record(CycleResult("shape_error", rows=exc.rows, message=str(exc)))
            return

        async with self._enrollment_lock:
            try:
                enrolled = await self._store.load()
            except PersistenceError as exc:
                self.enrolled = False
                self._record(CycleResult("persistence_failed", message=str(exc)))
                return

            if enrolled is None:
                try:
                    await self._store.save(candidate)
                except PersistenceError as exc:
                    self.enrolled = False
                    self._record(CycleResult("persistence_failed", message=str(exc)))
                    return
                self.enrolled = True
                self._record(CycleResult("enrolled", rows=candidate.rows, message="enrollment stored"))
                return

            self.enrolled = True
            try:
                score = await self._engine.compare(enrolled, candidate)
            except (ModelLoadError, ShapeMismatchError, InferenceError) as exc:
                logger.error("Comparison failed: %s", exc)
                self._record(CycleResult("comparison_failed", rows=candidate.rows, message=str(exc)))
                return

        cooldown = float(self.cfg.inference.cooldown_sec)
        if cooldown > 0:
            self._cooldown_until = self._clock() + cooldown
        self._record(CycleResult("compared", score=float(score), rows=candidate.rows))

    def _record(self, result: CycleResult) -> None:
        self.last_result = result
        self.history.append(result)
        logger.info(
            "Cycle result: outcome=%s score=%s rows=%s %s",
            result.outcome,
            result.score,
            result.rows,
            result.message,
        )
        for listener in list(self._result_listeners):
            try:
                listener(result)
            except Exception as exc:  # noqa: BLE001 - listeners are external code
                logger.error("Result listener failed: %s", exc)
        if self._result_storage is not None:
            task = asyncio.create_task(self._result_storage.append_result(result.to_dict()))
            self._pending_writes.add(task)
            task.add_done_callback(self._pending_writes.discard)

    # ------------------------------------------------------------------ display timer

    async def _timer_loop(self) -> None:
        t = self.cfg.timer
        tick = float(t.tick_sec)
        while True:
            try:
                if self.phase is CyclePhase.COLLECTING:
                    for j in range(int(t.collection_sec), 0, -1):
                        self.remaining_time_display = f"Collecting data ({j})secs left"
                        await asyncio.sleep(tick)
                        if self.phase is not CyclePhase.COLLECTING:
                            break
                    self.remaining_time_display = "Resetting Timer"
                    await asyncio.sleep(int(t.reset_sec) * tick)
                else:
                    for i in range(int(t.idle_sec), 0, -1):
                        if self.phase is CyclePhase.COLLECTING:
                            break
                        self.remaining_time_display = f"Idle timer ({i})secs left"
                        await asyncio.sleep(tick)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - display only
                logger.error("Display timer failed: %s", exc)
                self.remaining_time_display = "Seconds left: 0"
                await asyncio.sleep(tick)
