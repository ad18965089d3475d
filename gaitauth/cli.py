from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .authentication.controller import CycleResult, PipelineController, UiState
from .config import settings
from .exceptions import PersistenceError
from .gait_config import load_gait_config
from .inference.similarity import SimilarityEngine
from .sensors.replay import ReplaySensorSource
from .storage.enrollment_storage import EnrollmentStorage
from .storage.result_storage import ResultStorage

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gait continuous authentication tools")
    parser.add_argument("--config", default=None, help="Optional gait_config.toml path.")
    parser.add_argument(
        "--enrollment-dir",
        default=None,
        help=f"Enrollment storage directory (default: {settings.enrollment_storage_path}).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Run a recorded session through the pipeline.")
    replay.add_argument("--recording", required=True, help="Recorded session (.jsonl, .jsonl.gz or .jsonl.lz4).")
    replay.add_argument("--speed", type=float, default=1.0, help="Playback speed factor (default: 1.0).")
    replay.add_argument("--loop", action="store_true", help="Loop the recording until --duration elapses.")
    replay.add_argument("--duration", type=float, default=None, help="Stop after N wall-clock seconds.")
    replay.add_argument(
        "--model",
        default=None,
        help="Model artifact; defaults to <MODEL_PATH>/<inference.model_file>.",
    )
    replay.add_argument("--results-dir", default=None, help="Optional directory for results.jsonl.")

    sub.add_parser("show-enrollment", help="Print a summary of the stored enrollment.")
    sub.add_parser("reset-enrollment", help="Delete the stored enrollment.")
    return parser.parse_args(argv)


def _print_result(result: CycleResult) -> None:
    print(json.dumps(result.to_dict(), ensure_ascii=False), flush=True)


async def _replay(args: argparse.Namespace, store: EnrollmentStorage) -> int:
    gait_cfg = load_gait_config(Path(args.config) if args.config else None)
    model_path = Path(args.model) if args.model else settings.model_path / gait_cfg.inference.model_file
    source = ReplaySensorSource.from_file(Path(args.recording), speed=args.speed, loop=args.loop)
    controller = PipelineController(
        source,
        store,
        SimilarityEngine(model_path, window_rows=gait_cfg.collection.window_rows),
        cfg=gait_cfg,
        result_storage=ResultStorage(Path(args.results_dir)) if args.results_dir else None,
    )
    controller.add_result_listener(_print_result)

    try:
        if await controller.start() is not UiState.SUPPORTED:
            logger.error("Recording has no step events; pipeline not supported")
            return 2

        loop = asyncio.get_running_loop()
        deadline = None if args.duration is None else loop.time() + float(args.duration)
        while not source.finished.is_set():
            if deadline is not None and loop.time() >= deadline:
                break
            await asyncio.sleep(0.1)
        await controller.wait_idle(timeout=5.0)
    finally:
        await controller.stop()
        source.close()

    logger.info("Replay done: %s cycle result(s), enrolled=%s", len(controller.history), controller.enrolled)
    return 0


async def _show_enrollment(store: EnrollmentStorage) -> int:
    try:
        matrix = await store.load()
    except PersistenceError as exc:
        logger.error("Cannot read enrollment: %s", exc)
        return 1
    if matrix is None:
        print(json.dumps({"enrolled": False}))
        return 0
    print(
        json.dumps(
            {
                "enrolled": True,
                "rows": matrix.rows,
                "first_timestamp": int(matrix.timestamps[0]) if matrix.rows else None,
                "last_timestamp": int(matrix.timestamps[-1]) if matrix.rows else None,
                "column_means": [round(float(v), 6) for v in matrix.values.mean(axis=0)] if matrix.rows else [],
            }
        )
    )
    return 0


async def _run(args: argparse.Namespace) -> int:
    store = EnrollmentStorage(Path(args.enrollment_dir) if args.enrollment_dir else settings.enrollment_storage_path)
    if args.command == "replay":
        return await _replay(args, store)
    if args.command == "show-enrollment":
        return await _show_enrollment(store)
    if args.command == "reset-enrollment":
        try:
            await store.clear()
        except PersistenceError as exc:
            logger.error("Cannot delete enrollment: %s", exc)
            return 1
        logger.info("Enrollment deleted")
        return 0
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list] = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    args = parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
