"""API v1 router."""
from fastapi import APIRouter
from sidecar_autopilot.api.v1 import documents, health, processing

router = APIRouter(prefix="/v1")

router.include_router(documents.router)
router.include_router(health.router)
router.include_router(processing.router)
