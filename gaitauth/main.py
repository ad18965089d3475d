import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from hypercorn.config import Config

from .api import health, status
from .authentication.controller import PipelineController
from .config import settings
from .gait_config import get_gait_config
from .inference.similarity import SimilarityEngine
from .sensors.replay import ReplaySensorSource
from .storage.enrollment_storage import EnrollmentStorage
from .storage.result_storage import ResultStorage
from .utils.logging_config import setup_logging

setup_logging(
    log_level=settings.log_level,
    log_path=settings.log_path if settings.log_to_file else None,
    log_format=settings.log_format,
    retention_days=settings.log_retention_days,
    service=settings.app_name,
)

logger = logging.getLogger(__name__)


def build_sensor_source() -> Optional[ReplaySensorSource]:
    if settings.replay_recording is None:
        logger.warning("No replay recording configured; no step detector available")
        return None
    try:
        return ReplaySensorSource.from_file(
            settings.replay_recording,
            speed=settings.replay_speed,
            loop=settings.replay_loop,
        )
    except Exception as exc:
        logger.error(f"Failed to load replay recording {settings.replay_recording}: {exc}", exc_info=True)
        return None


def build_controller(result_storage: Optional[ResultStorage] = None) -> PipelineController:
    gait_cfg = get_gait_config()
    engine = SimilarityEngine(
        settings.model_path / gait_cfg.inference.model_file,
        window_rows=gait_cfg.collection.window_rows,
    )
    return PipelineController(
        build_sensor_source(),
        EnrollmentStorage(settings.enrollment_storage_path),
        engine,
        cfg=gait_cfg,
        result_storage=result_storage,
        enabled=settings.start_enabled,
    )


ControllerFactory = Callable[[Optional[ResultStorage]], PipelineController]


def create_app(controller_factory: ControllerFactory = build_controller) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} v{settings.version}")
        logger.info(f"Enrollment storage path: {settings.enrollment_storage_path}")
        logger.info(f"Log path: {settings.log_path}")

        result_storage = ResultStorage(settings.results_storage_path)
        controller = controller_factory(result_storage)
        app.state.result_storage = result_storage
        app.state.controller = controller
        ui_state = await controller.start()
        logger.info(f"Pipeline state: {ui_state.value}")

        yield

        logger.info(f"Shutting down {settings.app_name}")
        await controller.stop()
        close = getattr(controller.source, "close", None)
        if callable(close):
            close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(status.router, tags=["status"])
    return app


app = create_app()


def build_hypercorn_config() -> Config:
    config = Config()
    config.bind = [f"{settings.host}:{settings.port}"]
    config.loglevel = settings.log_level.lower()
    config.accesslog = "-"
    config.errorlog = "-"
    logger.info(f"Serving status API on http://{settings.host}:{settings.port}")
    return config


if __name__ == "__main__":
    import asyncio
    from hypercorn.asyncio import serve

    asyncio.run(serve(app, build_hypercorn_config()))
