from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from ..config import settings
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    try:
        controller = request.app.state.controller
        result_storage = getattr(request.app.state, "result_storage", None)
        storage_stats = result_storage.get_storage_stats() if result_storage is not None else None

        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "app_name": settings.app_name,
                "version": settings.version,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "ui_state": controller.ui_state.value,
                "storage_stats": storage_stats
            }
        )
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "unhealthy",
                "error": str(e)
            }
        )


@router.get("/")
async def root():
    return JSONResponse(
        content={
            "app_name": settings.app_name,
            "version": settings.version,
            "status": "running"
        }
    )
