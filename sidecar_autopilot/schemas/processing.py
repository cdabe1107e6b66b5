"""Processing request and response schemas."""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class ProcessRequest(BaseModel):
    """Manual drain request."""
    batch_size: Optional[int] = Field(default=None, ge=1, le=50, description="Fixed batch size; adaptive when omitted")
    timeout_seconds: Optional[float] = Field(default=None, gt=0, le=300, description="Time budget for the run")


class ProcessResponse(BaseModel):
    """Outcome of one drain run."""
    processed: int = Field(..., description="Jobs completed (including skipped)")
    errors: int = Field(..., description="Jobs that failed")
    cycles: int = Field(..., description="Non-empty queue reads")
    processing_time_ms: int = Field(..., description="Wall-clock time of the run")
    throughput_per_second: float = Field(..., description="Processed jobs per second")
    batch_size_used: int = Field(..., description="Batch size of the last read")
    skipped: int = Field(default=0, description="Jobs whose embedding was already fresh")
    dead_lettered: int = Field(default=0, description="Jobs moved to the dead-letter archive")
    error_details: List[str] = Field(default_factory=list)
    processed_message_ids: List[int] = Field(default_factory=list)
    stopped_reason: str = Field(..., description="queue_empty or time_budget")
    should_continue: bool = Field(default=False, description="More work is likely waiting")
    timestamp: str = Field(..., description="When the run started")


class TickResponse(BaseModel):
    """Outcome of one autopilot tick."""
    queue_size: Optional[int] = None
    scan_skipped: bool = False
    enqueued: Optional[int] = None
    drain: Optional[ProcessResponse] = None
    error: Optional[str] = None


class SystemStatus(BaseModel):
    """Aggregate sync health."""
    pending_jobs: int
    total_source_records: int
    artifacts_count: int
    valid_artifacts_count: int
    stale_count: int
    errors_last_hour: int
    errors_last_24h: int
    coverage_percent: float
    oldest_job_at: Optional[datetime] = None
    newest_job_at: Optional[datetime] = None
    autopilot_jobs_last_hour: int = 0
    last_checked: datetime
