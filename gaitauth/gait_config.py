from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib


FilterOrder = Literal["timestamp", "insertion"]


@dataclass(frozen=True)
class CadenceConfig:
    min_steps: int = 5
    confirm_window_sec: float = 7.0
    timeout_sec: float = 20.0

    def __post_init__(self) -> None:
        if int(self.min_steps) < 1:
            raise ValueError("min_steps must be >= 1")
        if float(self.confirm_window_sec) <= 0.0:
            raise ValueError("confirm_window_sec must be > 0")
        if float(self.timeout_sec) < float(self.confirm_window_sec):
            raise ValueError("timeout_sec must be >= confirm_window_sec")

    @property
    def confirm_window_ns(self) -> int:
        return int(round(float(self.confirm_window_sec) * 1e9))

    @property
    def timeout_ns(self) -> int:
        return int(round(float(self.timeout_sec) * 1e9))


@dataclass(frozen=True)
class CollectionConfig:
    window_rows: int = 200
    # 50000us between samples, roughly 20Hz.
    sampling_period_us: int = 50_000
    # Partial windows are never valid model inputs on their own.
    discard_on_abandon: bool = True

    def __post_init__(self) -> None:
        if int(self.window_rows) < 1:
            raise ValueError("window_rows must be >= 1")


@dataclass(frozen=True)
class FilterConfig:
    alpha: float = 0.854
    order: FilterOrder = "timestamp"

    def __post_init__(self) -> None:
        if not (0.0 < float(self.alpha) <= 1.0):
            raise ValueError("alpha must be in (0, 1]")
        if self.order not in ("timestamp", "insertion"):
            raise ValueError(f"Unknown filter order: {self.order}")


@dataclass(frozen=True)
class TimerConfig:
    idle_sec: int = 8
    collection_sec: int = 13
    reset_sec: int = 2
    tick_sec: float = 1.0

    def __post_init__(self) -> None:
        if int(self.idle_sec) < 1 or int(self.collection_sec) < 1:
            raise ValueError("idle_sec and collection_sec must be >= 1")
        if int(self.reset_sec) < 0:
            raise ValueError("reset_sec must be >= 0")
        if float(self.tick_sec) <= 0.0:
            raise ValueError("tick_sec must be > 0")


@dataclass(frozen=True)
class InferenceConfig:
    model_file: str = "siamese_model.pt"
    cooldown_sec: float = 60.0


@dataclass(frozen=True)
class GaitConfig:
    cadence: CadenceConfig = CadenceConfig()
    collection: CollectionConfig = CollectionConfig()
    filter: FilterConfig = FilterConfig()
    timer: TimerConfig = TimerConfig()
    inference: InferenceConfig = InferenceConfig()


def _default_config_path() -> Path:
    # gaitauth/gait_config.py -> gait_config.toml next to the package
    return Path(__file__).resolve().parents[1] / "gait_config.toml"


def load_gait_config(path: Optional[Path] = None) -> GaitConfig:
    path = Path(path) if path is not None else _default_config_path()
    if not path.exists():
        return GaitConfig()

    raw = tomllib.loads(path.read_text(encoding="utf-8"))

    cad_raw = raw.get("cadence", {}) or {}
    col_raw = raw.get("collection", {}) or {}
    flt_raw = raw.get("filter", {}) or {}
    tmr_raw = raw.get("timer", {}) or {}
    inf_raw = raw.get("inference", {}) or {}

    cadence = CadenceConfig(
        min_steps=int(cad_raw.get("min_steps", CadenceConfig.min_steps)),
        confirm_window_sec=float(cad_raw.get("confirm_window_sec", CadenceConfig.confirm_window_sec)),
        timeout_sec=float(cad_raw.get("timeout_sec", CadenceConfig.timeout_sec)),
    )
    collection = CollectionConfig(
        window_rows=int(col_raw.get("window_rows", CollectionConfig.window_rows)),
        sampling_period_us=int(col_raw.get("sampling_period_us", CollectionConfig.sampling_period_us)),
        discard_on_abandon=bool(col_raw.get("discard_on_abandon", CollectionConfig.discard_on_abandon)),
    )
    filter_cfg = FilterConfig(
        alpha=float(flt_raw.get("alpha", FilterConfig.alpha)),
        order=str(flt_raw.get("order", FilterConfig.order)),  # type: ignore[arg-type]
    )
    timer = TimerConfig(
        idle_sec=int(tmr_raw.get("idle_sec", TimerConfig.idle_sec)),
        collection_sec=int(tmr_raw.get("collection_sec", TimerConfig.collection_sec)),
        reset_sec=int(tmr_raw.get("reset_sec", TimerConfig.reset_sec)),
        tick_sec=float(tmr_raw.get("tick_sec", TimerConfig.tick_sec)),
    )
    inference = InferenceConfig(
        model_file=str(inf_raw.get("model_file", InferenceConfig.model_file)),
        cooldown_sec=float(inf_raw.get("cooldown_sec", InferenceConfig.cooldown_sec)),
    )

    return GaitConfig(
        cadence=cadence,
        collection=collection,
        filter=filter_cfg,
        timer=timer,
        inference=inference,
    )


_CACHED: Optional[GaitConfig] = None


def get_gait_config(path: Optional[Path] = None) -> GaitConfig:
    global _CACHED
    if _CACHED is None:
        _CACHED = load_gait_config(path)
    return _CACHED
