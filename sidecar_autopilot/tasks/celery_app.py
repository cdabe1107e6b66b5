"""Celery application and beat schedule for the embedding autopilot."""
from celery import Celery

from sidecar_autopilot.core.config import settings

celery_app = Celery(
    "sidecar_autopilot",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["sidecar_autopilot.tasks.autopilot"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "autopilot-embedding-sync": {
        "task": "sidecar_autopilot.tasks.autopilot.run_autopilot_tick",
        "schedule": settings.AUTOPILOT_INTERVAL_SECONDS,
        # A tick older than one interval is superseded by the next one
        "options": {"expires": settings.AUTOPILOT_INTERVAL_SECONDS},
    },
}
