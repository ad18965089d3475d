from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..gait_config import CadenceConfig

logger = logging.getLogger(__name__)


@dataclass
class CadenceCounter:
    step_count: int = 0
    window_start: Optional[int] = None

    def reset(self) -> None:
        self.step_count = 0
        self.window_start = None


class WalkingDetector:
    """Cadence rule over step-detector events.

    ``update`` returns ``True`` once ``min_steps`` steps land within
    ``confirm_window`` of the first counted step, ``False`` when the first
    counted step is older than ``timeout``, and ``None`` otherwise. Either
    decision resets the counter. The confirm rule is evaluated first, so a
    cadence satisfying both is reported as walking.
    """

    def __init__(self, cfg: Optional[CadenceConfig] = None) -> None:
        self.cfg = cfg or CadenceConfig()
        self._counter = CadenceCounter()
        self._walking = False

    @property
    def walking(self) -> bool:
        return self._walking

    @property
    def step_count(self) -> int:
        return self._counter.step_count

    @property
    def window_start(self) -> Optional[int]:
        return self._counter.window_start

    def reset(self) -> None:
        self._counter.reset()
        self._walking = False

    def update(self, timestamp_ns: int) -> Optional[bool]:
        counter = self._counter
        if counter.step_count == 0:
            counter.window_start = int(timestamp_ns)
        counter.step_count += 1

        elapsed = int(timestamp_ns) - int(counter.window_start)
        if counter.step_count >= int(self.cfg.min_steps) and elapsed < self.cfg.confirm_window_ns:
            logger.info("Walking confirmed: %s steps in %.2fs", counter.step_count, elapsed / 1e9)
            counter.reset()
            self._walking = True
            return True
        if elapsed > self.cfg.timeout_ns:
            logger.info("Cadence timeout: %s steps in %.2fs, not walking", counter.step_count, elapsed / 1e9)
            counter.reset()
            self._walking = False
            return False
        return None
