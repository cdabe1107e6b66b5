"""
Celery tasks that drive the embedding autopilot.

``run_autopilot_tick`` is fired by beat every AUTOPILOT_INTERVAL_SECONDS.
``process_embedding_queue`` drains the queue on demand and re-dispatches
itself while a run ends on its time budget with work still flowing.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from sidecar_autopilot.tasks.celery_app import celery_app
from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.database import engine
from sidecar_autopilot.services.cache import embedding_cache
from sidecar_autopilot.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)


@celery_app.task(name="sidecar_autopilot.tasks.autopilot.run_autopilot_tick")
def run_autopilot_tick() -> Optional[Dict[str, Any]]:
    """Scheduled task: scan for stale documents and drain the queue."""
    try:
        # Always create a fresh event loop for Celery tasks
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(_async_autopilot_tick())
        finally:
            loop.close()
    except Exception as e:
        logger.error(f"Failed to run autopilot tick in Celery task: {e}", exc_info=True)
        return None


@celery_app.task(name="sidecar_autopilot.tasks.autopilot.process_embedding_queue")
def process_embedding_queue(
    batch_size: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """
    Drain the embedding queue once.
    
    Args:
        batch_size: Fixed batch size; adaptive when omitted
        timeout_seconds: Time budget; DRAIN_TIME_BUDGET_SECONDS when omitted
    """
    try:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            result = loop.run_until_complete(_async_process_queue(batch_size, timeout_seconds))
        finally:
            loop.close()
    except Exception as e:
        logger.error(f"Failed to process embedding queue in Celery task: {e}", exc_info=True)
        return None
    
    if result.get("should_continue") and settings.DRAIN_SELF_CONTINUE:
        logger.info(f"Processed {result['processed']} jobs within budget, dispatching continuation")
        process_embedding_queue.delay(batch_size=batch_size, timeout_seconds=timeout_seconds)
    return result


async def _release_connections():
    """Pooled connections are bound to the task's loop, which closes after the task."""
    await engine.dispose()
    await embedding_cache.close()


async def _async_autopilot_tick() -> Dict[str, Any]:
    pipeline = get_pipeline()
    try:
        report = await pipeline.autopilot.tick()
        return report.to_dict()
    finally:
        await _release_connections()


async def _async_process_queue(batch_size: Optional[int], timeout_seconds: Optional[float]) -> Dict[str, Any]:
    pipeline = get_pipeline()
    try:
        result = await pipeline.drain_loop.run(
            batch_size=batch_size,
            timeout_seconds=timeout_seconds,
            origin="celery",
        )
        return result.to_dict()
    finally:
        await _release_connections()
