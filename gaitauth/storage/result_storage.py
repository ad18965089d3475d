from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import logging

logger = logging.getLogger(__name__)


class ResultStorage:
    """Append-only JSON Lines log of capture cycle outcomes."""

    FILENAME = "results.jsonl"

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.file_path = self.base_path / self.FILENAME
        logger.info("ResultStorage initialized at %s", self.base_path)

    async def append_result(self, result: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        try:
            payload = dict(result)
            payload["written_timestamp"] = datetime.now(timezone.utc).isoformat()
            async with aiofiles.open(self.file_path, mode="a", encoding="utf-8") as f:
                await f.write(json.dumps(payload, ensure_ascii=False) + "\n")
            return True, None
        except Exception as exc:
            error_msg = f"Failed to store cycle result: {exc}"
            logger.error(error_msg)
            return False, error_msg

    async def read_results(self, limit: Optional[int] = None) -> Tuple[bool, Optional[List[Dict[str, Any]]], Optional[str]]:
        try:
            if not self.file_path.exists():
                return True, [], None

            results: List[Dict[str, Any]] = []
            async with aiofiles.open(self.file_path, mode="r", encoding="utf-8") as f:
                async for line in f:
                    if line.strip():
                        results.append(json.loads(line))

            if limit is not None:
                results = results[-int(limit):] if int(limit) > 0 else []
            return True, results, None
        except Exception as exc:
            error_msg = f"Failed to read cycle results: {exc}"
            logger.error(error_msg)
            return False, None, error_msg

    def get_storage_stats(self) -> Dict[str, Any]:
        try:
            total_results = 0
            size_bytes = 0
            if self.file_path.exists():
                size_bytes = self.file_path.stat().st_size
                with self.file_path.open("r", encoding="utf-8") as f:
                    total_results = sum(1 for line in f if line.strip())
            return {
                "base_path": str(self.base_path),
                "total_results": total_results,
                "total_size_mb": round(size_bytes / (1024 * 1024), 2),
            }
        except Exception as e:
            logger.error(f"Failed to get storage stats: {str(e)}")
            return {
                "base_path": str(self.base_path),
                "error": str(e)
            }
