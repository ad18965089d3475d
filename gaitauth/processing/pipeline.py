import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from ..exceptions import DataShapeError, ShapeMismatchError
from ..gait_config import FilterConfig, FilterOrder
from ..sensors.models import SensorSample

logger = logging.getLogger(__name__)


ACC_COLUMNS = ["acc_x", "acc_y", "acc_z"]
GYR_COLUMNS = ["gyr_x", "gyr_y", "gyr_z"]
FEATURE_COLUMNS = ACC_COLUMNS + GYR_COLUMNS


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Aligned, filtered window: one row per timestamp, columns ``FEATURE_COLUMNS``."""

    timestamps: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        timestamps = np.asarray(self.timestamps, dtype=np.int64).reshape(-1)
        values = np.asarray(self.values, dtype=np.float32)
        if values.ndim != 2 or values.shape[1] != len(FEATURE_COLUMNS):
            raise ShapeMismatchError(f"Feature values must be (N, {len(FEATURE_COLUMNS)}), got {values.shape}")
        if values.shape[0] != timestamps.shape[0]:
            raise ShapeMismatchError(
                f"{values.shape[0]} feature rows but {timestamps.shape[0]} timestamps"
            )
        object.__setattr__(self, "timestamps", timestamps)
        object.__setattr__(self, "values", values)

    @property
    def rows(self) -> int:
        return int(self.values.shape[0])

    def require_rows(self, expected: int) -> None:
        if self.rows != int(expected):
            raise ShapeMismatchError(f"Feature matrix has {self.rows} rows, expected {int(expected)}")

    def to_model_input(self) -> np.ndarray:
        """(1, rows, 6) float32 layout for the similarity model."""
        return np.ascontiguousarray(self.values.reshape(1, self.rows, len(FEATURE_COLUMNS)))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.values,
            index=pd.Index(self.timestamps, name="timestamp"),
            columns=FEATURE_COLUMNS,
        )


def low_pass_filter(
    buffer: Mapping[int, SensorSample],
    alpha: float,
    *,
    columns: Sequence[str],
    order: FilterOrder = "timestamp",
) -> pd.DataFrame:
    """First-order exponential smoothing per axis.

    ``f[0] = raw[0]`` and ``f[i] = alpha * raw[i] + (1 - alpha) * f[i - 1]``,
    where ``i - 1`` is the previous key in the chosen order. ``"insertion"``
    follows the buffer's arrival order, which is only an approximation of time
    order when samples arrive out of sequence.
    """
    keys = sorted(buffer) if order == "timestamp" else list(buffer)
    index = pd.Index(np.asarray(keys, dtype=np.int64), name="timestamp")
    if not keys:
        return pd.DataFrame(np.empty((0, len(columns)), dtype=np.float32), index=index, columns=list(columns))

    raw = np.asarray([buffer[k].axes for k in keys], dtype=np.float32)
    filtered = np.empty_like(raw)
    a = np.float32(alpha)
    b = np.float32(1.0) - a
    filtered[0] = raw[0]
    for i in range(1, raw.shape[0]):
        filtered[i] = a * raw[i] + b * filtered[i - 1]

    return pd.DataFrame(filtered, index=index, columns=list(columns))


def align(acc: pd.DataFrame, gyr: pd.DataFrame) -> pd.DataFrame:
    """Inner join on timestamp; only timestamps present in both sensors survive."""
    aligned = acc.join(gyr, how="inner").sort_index()
    logger.debug("Common timestamps: %s (acc=%s gyr=%s)", len(aligned), len(acc), len(gyr))
    return aligned[FEATURE_COLUMNS]


def build_feature_matrix(
    accelerometer: Mapping[int, SensorSample],
    gyroscope: Mapping[int, SensorSample],
    cfg: Optional[FilterConfig] = None,
    *,
    window_rows: int = 200,
) -> FeatureMatrix:
    cfg = cfg or FilterConfig()
    acc = low_pass_filter(accelerometer, cfg.alpha, columns=ACC_COLUMNS, order=cfg.order)
    gyr = low_pass_filter(gyroscope, cfg.alpha, columns=GYR_COLUMNS, order=cfg.order)
    aligned = align(acc, gyr)

    rows = len(aligned)
    if rows < int(window_rows):
        raise DataShapeError(rows, int(window_rows))
    if rows > int(window_rows):
        logger.debug("Truncating %s aligned rows to the earliest %s", rows, int(window_rows))
        aligned = aligned.iloc[: int(window_rows)]

    logger.info("Built feature matrix: %s rows from acc=%s gyr=%s samples", len(aligned), len(acc), len(gyr))
    return FeatureMatrix(
        timestamps=aligned.index.to_numpy(dtype=np.int64),
        values=aligned.to_numpy(dtype=np.float32),
    )
