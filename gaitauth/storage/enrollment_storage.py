from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

import aiofiles
import aiofiles.os
import numpy as np

from ..exceptions import PersistenceError, ShapeMismatchError
from ..processing.pipeline import FEATURE_COLUMNS, FeatureMatrix

logger = logging.getLogger(__name__)


def matrix_to_records(matrix: FeatureMatrix) -> Dict[str, str]:
    """Key/value layout of an enrollment: ``"<timestamp>" -> "ax,ay,az,gx,gy,gz"``."""
    records: Dict[str, str] = {}
    for timestamp, row in zip(matrix.timestamps.tolist(), matrix.values.tolist()):
        records[str(int(timestamp))] = ",".join(repr(float(v)) for v in row)
    return records


def matrix_from_records(records: Mapping[str, str]) -> Optional[FeatureMatrix]:
    if not records:
        return None
    rows = []
    for key, value in records.items():
        try:
            timestamp = int(key)
            fields = [float(v) for v in str(value).split(",")]
        except ValueError as exc:
            raise PersistenceError(f"Corrupt enrollment entry {key!r}: {exc}") from exc
        if len(fields) != len(FEATURE_COLUMNS):
            raise PersistenceError(
                f"Enrollment entry {key!r} has {len(fields)} values, expected {len(FEATURE_COLUMNS)}"
            )
        rows.append((timestamp, fields))
    rows.sort(key=lambda r: r[0])
    try:
        return FeatureMatrix(
            timestamps=np.asarray([r[0] for r in rows], dtype=np.int64),
            values=np.asarray([r[1] for r in rows], dtype=np.float32),
        )
    except ShapeMismatchError as exc:
        raise PersistenceError(f"Corrupt enrollment record: {exc}") from exc


class EnrollmentStorage:
    """Single-slot enrollment record stored as one JSON object on disk."""

    FILENAME = "enrollment.json"

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.file_path = self.base_path / self.FILENAME
        logger.info("EnrollmentStorage initialized at %s", self.file_path)

    async def exists(self) -> bool:
        return await aiofiles.os.path.exists(self.file_path)

    async def save(self, matrix: FeatureMatrix) -> None:
        payload = json.dumps(matrix_to_records(matrix), ensure_ascii=False)
        tmp_path = self.file_path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, self.file_path)
        except OSError as exc:
            error_msg = f"Failed to store enrollment: {exc}"
            logger.error(error_msg)
            raise PersistenceError(error_msg) from exc
        logger.info("Stored enrollment: %s rows at %s", matrix.rows, self.file_path)

    async def load(self) -> Optional[FeatureMatrix]:
        if not await self.exists():
            return None
        try:
            async with aiofiles.open(self.file_path, mode="r", encoding="utf-8") as f:
                raw = await f.read()
            records = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as exc:
            error_msg = f"Failed to read enrollment: {exc}"
            logger.error(error_msg)
            raise PersistenceError(error_msg) from exc
        if not isinstance(records, dict):
            raise PersistenceError(f"Unexpected enrollment format in {self.file_path}")
        return matrix_from_records(records)

    async def clear(self) -> None:
        try:
            if await self.exists():
                await aiofiles.os.remove(self.file_path)
        except OSError as exc:
            error_msg = f"Failed to clear enrollment: {exc}"
            logger.error(error_msg)
            raise PersistenceError(error_msg) from exc
        logger.info("Enrollment cleared at %s", self.file_path)
