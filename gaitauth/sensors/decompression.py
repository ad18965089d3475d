import gzip
import logging
from typing import Optional

import lz4.frame

from ..exceptions import RecordingFormatError

logger = logging.getLogger(__name__)


class RecordingDecompressor:
    """Adaptive decoder for recorded sessions stored plain, GZIP or LZ4."""

    LZ4_MAGIC = b"\x04\x22\x4d\x18"
    GZIP_MAGIC = b"\x1f\x8b"

    def decompress(self, data: bytes, compression_hint: Optional[str] = None) -> bytes:
        if not data:
            raise RecordingFormatError("Empty recording")

        strategies = self._build_strategies(compression_hint, data)
        if not strategies:
            return data

        last_error: Optional[str] = None
        for strategy in strategies:
            try:
                decompressed = strategy(data)
                logger.info(
                    "Decompressed recording %s bytes to %s bytes using %s",
                    len(data),
                    len(decompressed),
                    strategy.__name__,
                )
                return decompressed
            except Exception as inner_exc:  # noqa: BLE001 - try the next strategy
                last_error = f"{strategy.__name__} failed: {inner_exc}"
                logger.debug(last_error)

        raise RecordingFormatError(last_error or "Unsupported compression format")

    def _build_strategies(self, hint: Optional[str], data: bytes):
        hint_lower = (hint or "").lower()
        if hint_lower == "lz4":
            return [self._decompress_lz4]
        if hint_lower in ("gzip", "gz"):
            return [self._decompress_gzip]
        if hint_lower and hint_lower not in ("none", "jsonl", "json"):
            logger.warning("Unsupported compression hint '%s', falling back to auto-detect", hint)

        if data.startswith(self.GZIP_MAGIC):
            return [self._decompress_gzip]
        if data[:4] == self.LZ4_MAGIC:
            return [self._decompress_lz4]
        # Plain JSON Lines.
        return []

    @staticmethod
    def _decompress_lz4(data: bytes) -> bytes:
        return lz4.frame.decompress(data)

    @staticmethod
    def _decompress_gzip(data: bytes) -> bytes:
        return gzip.decompress(data)
