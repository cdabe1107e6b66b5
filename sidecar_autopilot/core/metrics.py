"""
Drain-loop metrics and timing.
"""
import time
import logging
import uuid
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import json

logger = logging.getLogger(__name__)


@dataclass
class DrainMetrics:
    """Metrics for a single drain invocation."""
    trace_id: str
    origin: str
    
    # Timing breakdowns
    start_time: float = field(default_factory=time.time)
    embedding_time_ms: float = 0.0
    embedding_calls: int = 0
    total_time_ms: Optional[float] = None
    
    # Outcome counters
    cycles: int = 0
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    dead_lettered: int = 0
    batch_sizes: list = field(default_factory=list)
    stopped_reason: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            "trace_id": self.trace_id,
            "origin": self.origin,
            "cycles": self.cycles,
            "processed": self.processed,
            "errors": self.errors,
            "skipped": self.skipped,
            "dead_lettered": self.dead_lettered,
            "batch_sizes": self.batch_sizes[-20:],  # Keep the log line bounded
            "embedding_calls": self.embedding_calls,
            "embedding_time_ms": round(self.embedding_time_ms, 2),
            "total_time_ms": round(self.total_time_ms, 2) if self.total_time_ms is not None else None,
            "stopped_reason": self.stopped_reason,
        }
    
    def emit(self, level: str = "INFO"):
        """Emit metrics as structured JSON log."""
        log_message = json.dumps(self.to_dict())
        
        if level == "INFO":
            logger.info(f"METRICS: {log_message}")
        elif level == "WARNING":
            logger.warning(f"METRICS: {log_message}")
        else:
            logger.error(f"METRICS: {log_message}")


class DrainMetricsCollector:
    """Collects counters and timings while a drain loop runs."""
    
    def __init__(self, origin: str = "manual"):
        self.metrics = DrainMetrics(trace_id=str(uuid.uuid4()), origin=origin)
        self._embedding_start: Optional[float] = None
    
    def record_cycle(self, batch_size: int):
        """Mark one queue read with the batch size requested."""
        self.metrics.cycles += 1
        self.metrics.batch_sizes.append(batch_size)
    
    def start_embedding(self):
        """Mark start of an embedding call."""
        self._embedding_start = time.time()
    
    def end_embedding(self):
        """Mark end of an embedding call."""
        if self._embedding_start:
            self.metrics.embedding_time_ms += (time.time() - self._embedding_start) * 1000
            self.metrics.embedding_calls += 1
            self._embedding_start = None
    
    def record_processed(self, skipped: bool = False):
        self.metrics.processed += 1
        if skipped:
            self.metrics.skipped += 1
    
    def record_error(self, dead_lettered: bool = False):
        self.metrics.errors += 1
        if dead_lettered:
            self.metrics.dead_lettered += 1
    
    def finish(self, stopped_reason: str) -> DrainMetrics:
        """Finish metrics collection."""
        self.metrics.total_time_ms = (time.time() - self.metrics.start_time) * 1000
        self.metrics.stopped_reason = stopped_reason
        return self.metrics
