"""In-memory collaborators for exercising the sync pipeline without PostgreSQL."""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

from sidecar_autopilot.core.exceptions import ModelError, QueueUnavailable
from sidecar_autopilot.services.change_detector import StaleRecord
from sidecar_autopilot.services.content_store import SourceRecord
from sidecar_autopilot.services.fingerprint import fingerprint
from sidecar_autopilot.services.job_queue import Job


class FakeClock:
    """Monotonic clock the tests move by hand."""
    
    def __init__(self, start: float = 0.0):
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float):
        self.now += seconds


class FakeQueue:
    """Visibility-timeout queue with the same contract as ``JobQueue``."""
    
    def __init__(self, clock: Optional[FakeClock] = None, lock_available: bool = True):
        self.clock = clock or FakeClock()
        self.lock_available = lock_available
        self.unavailable = False
        self.jobs: Dict[int, Dict[str, Any]] = {}
        self.archived: List[Dict[str, Any]] = []
        self.dead_letters: List[Dict[str, Any]] = []
        self.read_calls = 0
        self.send_batch_calls: List[int] = []
        self.pending_lookups = 0
        self.lock_requests: List[str] = []
        self._next_id = 1
    
    def _check(self):
        if self.unavailable:
            raise QueueUnavailable("Queue 'embedding_jobs' unavailable")
    
    async def send(self, payload: Dict[str, Any]) -> int:
        self._check()
        msg_id = self._next_id
        self._next_id += 1
        self.jobs[msg_id] = {"payload": payload, "read_count": 0, "vt": self.clock.now}
        return msg_id
    
    async def send_batch(self, payloads: List[Dict[str, Any]]) -> List[int]:
        self._check()
        self.send_batch_calls.append(len(payloads))
        return [await self.send(payload) for payload in payloads]
    
    async def read(self, visibility_timeout: float, batch_size: int) -> List[Job]:
        self._check()
        self.read_calls += 1
        visible = sorted(msg_id for msg_id, job in self.jobs.items() if job["vt"] <= self.clock.now)
        claimed = []
        for msg_id in visible[:batch_size]:
            job = self.jobs[msg_id]
            job["vt"] = self.clock.now + visibility_timeout
            job["read_count"] += 1
            claimed.append(Job(message_id=msg_id, payload=job["payload"], read_count=job["read_count"]))
        return claimed
    
    async def archive(self, message_id: int) -> bool:
        self._check()
        job = self.jobs.pop(message_id, None)
        if job is None:
            return False
        self.archived.append({"msg_id": message_id, **job})
        return True
    
    async def dead_letter(self, message_id: int, reason: str) -> bool:
        self._check()
        job = self.jobs.pop(message_id, None)
        if job is None:
            return False
        self.dead_letters.append({"msg_id": message_id, "reason": reason, **job})
        return True
    
    async def size(self) -> int:
        self._check()
        return len(self.jobs)
    
    async def pending_source_ids(self):
        self._check()
        self.pending_lookups += 1
        return {job["payload"].get("source_id") for job in self.jobs.values() if isinstance(job["payload"], dict)}
    
    async def dead_lettered_fingerprints(self) -> Dict[str, Set[str]]:
        self._check()
        dead: Dict[str, Set[str]] = {}
        for entry in self.dead_letters:
            payload = entry["payload"]
            if not isinstance(payload, dict) or payload.get("source_id") is None:
                continue
            content_fingerprint = payload.get("current_fingerprint") or fingerprint(payload.get("content_snapshot") or "")
            dead.setdefault(payload["source_id"], set()).add(content_fingerprint)
        return dead
    
    async def stats(self) -> Dict[str, Any]:
        return {
            "total_pending": len(self.jobs),
            "oldest_job": None,
            "newest_job": None,
            "autopilot_jobs_last_hour": sum(
                1 for job in self.jobs.values() if job["payload"].get("origin") == "scan"
            ),
        }
    
    @asynccontextmanager
    async def scan_lock(self, name: str):
        self.lock_requests.append(name)
        yield self.lock_available
    
    def payloads(self) -> List[Dict[str, Any]]:
        return [self.jobs[msg_id]["payload"] for msg_id in sorted(self.jobs)]


class FakeContentStore:
    """Source records in a dict; observers fire like ``ContentStore``'s."""
    
    def __init__(self, sidecar_store: Optional["FakeSidecarStore"] = None):
        self.records: Dict[str, SourceRecord] = {}
        self.sidecar_store = sidecar_store
        self._observers = []
        self._tick = datetime(2024, 1, 1, tzinfo=timezone.utc)
    
    def _timestamp(self) -> datetime:
        self._tick += timedelta(seconds=1)
        return self._tick
    
    def on_mutate(self, observer):
        self._observers.append(observer)
        return observer
    
    async def get(self, source_id) -> Optional[SourceRecord]:
        return self.records.get(str(source_id))
    
    async def list_eligible(self, limit: int, order_by_updated_desc: bool = True) -> List[SourceRecord]:
        eligible = [r for r in self.records.values() if r.content]
        eligible.sort(key=lambda r: r.updated_at, reverse=order_by_updated_desc)
        return eligible[:limit]
    
    async def create(self, content: str, metadata=None, source_id: Optional[str] = None) -> SourceRecord:
        now = self._timestamp()
        record = SourceRecord(
            id=source_id or str(uuid.uuid4()),
            content=content,
            content_hash=fingerprint(content),
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )
        self.records[record.id] = record
        if record.content:
            for observer in self._observers:
                await observer(record)
        return record
    
    async def update(self, source_id, content: Optional[str] = None, metadata=None) -> Optional[SourceRecord]:
        record = self.records.get(str(source_id))
        if record is None:
            return None
        changed = content is not None and content != record.content
        if changed:
            record.content = content
            record.content_hash = fingerprint(content)
        if metadata is not None:
            record.metadata = metadata
        record.updated_at = self._timestamp()
        if changed and record.content:
            for observer in self._observers:
                await observer(record)
        return record
    
    async def delete(self, source_id) -> bool:
        record = self.records.pop(str(source_id), None)
        if record is not None and self.sidecar_store is not None:
            self.sidecar_store.artifacts.pop(record.id, None)
        return record is not None


class FakeSidecarStore:
    """Artifacts keyed by source id; upsert overwrites in place."""
    
    def __init__(self):
        self.artifacts: Dict[str, Dict[str, Any]] = {}
        self.content_store: Optional[FakeContentStore] = None
        self.upserts = 0
    
    async def upsert(self, source_id, source_fingerprint: str, vector, source_text: str = "", model=None) -> bool:
        self.upserts += 1
        if self.content_store is not None and str(source_id) not in self.content_store.records:
            return False
        self.artifacts[str(source_id)] = {
            "fingerprint": source_fingerprint,
            "vector": list(vector),
            "model": model,
        }
        return True
    
    async def get(self, source_id):
        return self.artifacts.get(str(source_id))
    
    async def get_fingerprint(self, source_id) -> Optional[str]:
        artifact = self.artifacts.get(str(source_id))
        return artifact["fingerprint"] if artifact else None


class FakeChangeDetector:
    """Stale-record join over the fake stores, most recently updated first."""
    
    def __init__(self, content_store: FakeContentStore, sidecar_store: FakeSidecarStore):
        self.content_store = content_store
        self.sidecar_store = sidecar_store
        self.calls = 0
    
    async def find_stale(self, limit: int) -> List[StaleRecord]:
        self.calls += 1
        stale = []
        for record in await self.content_store.list_eligible(len(self.content_store.records) or 1):
            stored = await self.sidecar_store.get_fingerprint(record.id)
            if stored is None or stored != record.content_hash:
                stale.append(StaleRecord(
                    source_id=record.id,
                    content=record.content,
                    current_fingerprint=record.content_hash,
                    stored_fingerprint=stored,
                    content_length=len(record.content),
                ))
        return stale[:limit]
    
    async def count_stale(self, limit: int) -> int:
        return len(await self.find_stale(limit))


class FakeErrorLog:
    
    def __init__(self):
        self.records: List[Dict[str, Any]] = []
    
    async def record(self, message, source_id=None, context=None, function_name=None, queue_message_id=None) -> bool:
        self.records.append({
            "message": message,
            "source_id": source_id,
            "context": context or {},
            "function_name": function_name,
            "queue_message_id": queue_message_id,
        })
        return True
    
    async def count_since(self, since) -> int:
        return len(self.records)


class FakeEmbedder:
    """Deterministic vectors; texts in ``failing`` raise, ``cost`` advances the clock."""
    
    def __init__(self, dimension: int = 4, failing=(), clock: Optional[FakeClock] = None, cost: float = 0.0):
        self.model = "fake-embedding-model"
        self.dimension = dimension
        self.failing = set(failing)
        self.clock = clock
        self.cost = cost
        self.calls: List[str] = []
    
    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.clock is not None:
            self.clock.advance(self.cost)
        if not text:
            raise ModelError("Cannot embed empty text")
        if text in self.failing:
            raise RuntimeError(f"provider rejected '{text}'")
        return [float(len(text))] * self.dimension
