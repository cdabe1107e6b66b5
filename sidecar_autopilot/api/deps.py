"""API dependencies for FastAPI endpoints."""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from sidecar_autopilot.core.database import get_db
from sidecar_autopilot.services.pipeline import Pipeline, get_pipeline as _get_pipeline


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database session."""
    async for session in get_db():
        yield session


def get_pipeline() -> Pipeline:
    """Dependency for the shared sync pipeline."""
    return _get_pipeline()
