"""Wires the stores and services of the sync pipeline together."""
from dataclasses import dataclass
from functools import lru_cache

from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.services.autopilot import Autopilot
from sidecar_autopilot.services.cache import embedding_cache
from sidecar_autopilot.services.change_detector import ChangeDetector
from sidecar_autopilot.services.content_store import ContentStore
from sidecar_autopilot.services.drain_loop import AdaptiveDrainLoop
from sidecar_autopilot.services.embedder import Embedder
from sidecar_autopilot.services.enqueuer import Enqueuer
from sidecar_autopilot.services.error_log import ErrorLog
from sidecar_autopilot.services.fingerprint import HashIndex
from sidecar_autopilot.services.job_queue import JobQueue
from sidecar_autopilot.services.monitoring import StatusService
from sidecar_autopilot.services.sidecar_store import SidecarStore


@dataclass
class Pipeline:
    content_store: ContentStore
    sidecar_store: SidecarStore
    hash_index: HashIndex
    queue: JobQueue
    change_detector: ChangeDetector
    error_log: ErrorLog
    enqueuer: Enqueuer
    drain_loop: AdaptiveDrainLoop
    autopilot: Autopilot
    status: StatusService


def build_pipeline(session_factory=AsyncSessionLocal, embedder: Embedder = None) -> Pipeline:
    content_store = ContentStore(session_factory)
    sidecar_store = SidecarStore(session_factory)
    queue = JobQueue(session_factory)
    change_detector = ChangeDetector(session_factory)
    error_log = ErrorLog(session_factory)
    enqueuer = Enqueuer(queue, change_detector, error_log)
    drain_loop = AdaptiveDrainLoop(
        queue,
        sidecar_store,
        embedder or Embedder(cache=embedding_cache),
        error_log,
    )
    
    # Fast path: every committed content change enqueues its own job
    content_store.on_mutate(enqueuer.enqueue_record)
    
    return Pipeline(
        content_store=content_store,
        sidecar_store=sidecar_store,
        hash_index=HashIndex(content_store, sidecar_store),
        queue=queue,
        change_detector=change_detector,
        error_log=error_log,
        enqueuer=enqueuer,
        drain_loop=drain_loop,
        autopilot=Autopilot(queue, enqueuer, drain_loop, error_log),
        status=StatusService(queue, change_detector, error_log, session_factory),
    )


@lru_cache()
def get_pipeline() -> Pipeline:
    """Process-wide pipeline instance."""
    return build_pipeline()
