from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import logging

from ..authentication.controller import PipelineController

logger = logging.getLogger(__name__)

router = APIRouter()


def _controller(request: Request) -> PipelineController:
    return request.app.state.controller


@router.get("/status")
async def get_status(request: Request):
    return JSONResponse(content=_controller(request).snapshot())


@router.post("/toggle")
async def toggle_enabled(request: Request):
    enabled = await _controller(request).toggle_enabled()
    logger.info(f"Pipeline toggled via API, enabled={enabled}")
    return JSONResponse(content={"status": "ok", "enabled": enabled})


@router.post("/enrollment/reset")
async def reset_enrollment(request: Request):
    controller = _controller(request)
    if not await controller.reset_enrollment():
        return JSONResponse(
            status_code=500,
            content={"status": "error", "reason": "persistence_failed"}
        )
    return JSONResponse(content={"status": "ok", "enrolled": controller.enrolled})
