"""Queue processing and sync status endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from sidecar_autopilot.api.deps import get_pipeline
from sidecar_autopilot.core.exceptions import QueueUnavailable
from sidecar_autopilot.schemas.processing import ProcessRequest, ProcessResponse, TickResponse, SystemStatus
from sidecar_autopilot.services.pipeline import Pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/processing", tags=["processing"])


@router.post("/run", response_model=ProcessResponse)
async def run_processing(
    request: Optional[ProcessRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Drain the embedding queue once and report what was done."""
    request = request or ProcessRequest()
    try:
        result = await pipeline.drain_loop.run(
            batch_size=request.batch_size,
            timeout_seconds=request.timeout_seconds,
            origin="api",
        )
    except QueueUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return ProcessResponse(**result.to_dict())


@router.post("/tick", response_model=TickResponse)
async def run_tick(pipeline: Pipeline = Depends(get_pipeline)):
    """Run one autopilot tick immediately."""
    report = await pipeline.autopilot.tick()
    return TickResponse(**report.to_dict())


@router.get("/status", response_model=SystemStatus)
async def get_status(pipeline: Pipeline = Depends(get_pipeline)):
    """Queue depth, coverage and error counts."""
    try:
        return await pipeline.status.get_status()
    except QueueUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
