"""Unit tests for the enqueuer."""
import pytest
from unittest.mock import AsyncMock

from sidecar_autopilot.services.enqueuer import Enqueuer, ENQUEUE_FAILED, ORIGIN_SCAN, ORIGIN_TRIGGER
from sidecar_autopilot.services.fingerprint import fingerprint


@pytest.mark.unit
class TestEnqueuer:
    """Test cases for Enqueuer."""
    
    @pytest.fixture
    def enqueuer(self, fake_queue, change_detector, error_log):
        return Enqueuer(
            fake_queue,
            change_detector,
            error_log,
            commit_batch_size=100,
            high_priority_length=5000,
            use_scan_lock=True,
            scan_lock_name="autopilot_sync",
        )
    
    def test_build_payload(self, enqueuer):
        payload = enqueuer.build_payload("doc-1", "hello", ORIGIN_SCAN, previous_fingerprint="abc")
        
        assert payload["source_id"] == "doc-1"
        assert payload["content_snapshot"] == "hello"
        assert payload["origin"] == "scan"
        assert payload["priority"] == "normal"
        assert payload["content_length"] == 5
        assert payload["current_fingerprint"] == fingerprint("hello")
        assert payload["previous_fingerprint"] == "abc"
        assert "enqueued_at" in payload
    
    def test_long_content_is_high_priority(self, enqueuer):
        payload = enqueuer.build_payload("doc-1", "x" * 5001, ORIGIN_TRIGGER)
        
        assert payload["priority"] == "high"
    
    @pytest.mark.asyncio
    async def test_enqueue_record_sends_trigger_job(self, enqueuer, fake_queue, content_store):
        record = await content_store.create("hello", source_id="doc-a")
        
        msg_id = await enqueuer.enqueue_record(record)
        
        assert msg_id == 1
        payload = fake_queue.payloads()[0]
        assert payload["origin"] == "trigger"
        assert payload["content_snapshot"] == "hello"
    
    @pytest.mark.asyncio
    async def test_enqueue_record_ignores_empty_content(self, enqueuer, fake_queue, content_store):
        record = await content_store.create("", source_id="doc-empty")
        
        assert await enqueuer.enqueue_record(record) is None
        assert await fake_queue.size() == 0
    
    @pytest.mark.asyncio
    async def test_enqueue_stale_creates_scan_jobs(self, enqueuer, fake_queue, content_store):
        await content_store.create("alpha", source_id="doc-a")
        await content_store.create("beta", source_id="doc-b")
        
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == 2
        assert {p["source_id"] for p in fake_queue.payloads()} == {"doc-a", "doc-b"}
        assert all(p["origin"] == "scan" for p in fake_queue.payloads())
        assert fake_queue.lock_requests == ["autopilot_sync"]
    
    @pytest.mark.asyncio
    async def test_pending_job_suppresses_duplicate(self, enqueuer, fake_queue, content_store):
        """A document with a job already pending gets no second job."""
        record = await content_store.create("alpha", source_id="doc-a")
        await enqueuer.enqueue_record(record)
        await content_store.create("beta", source_id="doc-b")
        
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == 1
        source_ids = [p["source_id"] for p in fake_queue.payloads()]
        assert source_ids.count("doc-a") == 1
        assert source_ids.count("doc-b") == 1
    
    @pytest.mark.asyncio
    async def test_dead_lettered_document_waits_for_new_content(self, enqueuer, fake_queue, content_store):
        await content_store.create("poison", source_id="doc-p")
        assert await enqueuer.enqueue_stale(500) == 1
        [job] = await fake_queue.read(visibility_timeout=60, batch_size=1)
        await fake_queue.dead_letter(job.message_id, "RuntimeError: provider rejected")
        
        assert await enqueuer.enqueue_stale(500) == 0
        assert await enqueuer.enqueue_stale(500) == 0
        
        await content_store.update("doc-p", content="cured")
        
        assert await enqueuer.enqueue_stale(500) == 1
        assert fake_queue.payloads()[0]["content_snapshot"] == "cured"
    
    @pytest.mark.asyncio
    async def test_dead_letter_of_other_document_does_not_suppress(self, enqueuer, fake_queue, content_store):
        await content_store.create("same text", source_id="doc-a")
        await fake_queue.send({"source_id": "doc-b", "content_snapshot": "same text"})
        [job] = await fake_queue.read(visibility_timeout=60, batch_size=1)
        await fake_queue.dead_letter(job.message_id, "RuntimeError: provider rejected")
        
        assert await enqueuer.enqueue_stale(500) == 1
    
    @pytest.mark.asyncio
    async def test_sends_in_micro_batches(self, enqueuer, fake_queue, content_store):
        for index in range(250):
            await content_store.create(f"content {index}", source_id=f"doc-{index}")
        
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == 250
        assert fake_queue.send_batch_calls == [100, 100, 50]
    
    @pytest.mark.asyncio
    async def test_nothing_stale_touches_no_queue(self, enqueuer, fake_queue):
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == 0
        assert fake_queue.pending_lookups == 0
        assert fake_queue.lock_requests == []
        assert fake_queue.send_batch_calls == []
    
    @pytest.mark.asyncio
    async def test_lock_held_elsewhere_skips_scan(self, enqueuer, fake_queue, content_store):
        fake_queue.lock_available = False
        await content_store.create("alpha", source_id="doc-a")
        
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == 0
        assert await fake_queue.size() == 0
    
    @pytest.mark.asyncio
    async def test_lock_can_be_disabled(self, fake_queue, change_detector, error_log, content_store):
        enqueuer = Enqueuer(fake_queue, change_detector, error_log, use_scan_lock=False)
        await content_store.create("alpha", source_id="doc-a")
        
        assert await enqueuer.enqueue_stale(500) == 1
        assert fake_queue.lock_requests == []
    
    @pytest.mark.asyncio
    async def test_failure_returns_sentinel(self, enqueuer, change_detector, error_log):
        change_detector.find_stale = AsyncMock(side_effect=RuntimeError("scan exploded"))
        
        enqueued = await enqueuer.enqueue_stale(500)
        
        assert enqueued == ENQUEUE_FAILED
        assert error_log.records[0]["function_name"] == "enqueue_stale"
        assert "scan exploded" in error_log.records[0]["message"]
    
    @pytest.mark.asyncio
    async def test_queue_failure_mid_scan_returns_sentinel(self, enqueuer, fake_queue, content_store):
        await content_store.create("alpha", source_id="doc-a")
        fake_queue.unavailable = True
        
        assert await enqueuer.enqueue_stale(500) == ENQUEUE_FAILED
    
    @pytest.mark.asyncio
    async def test_limit_bounds_jobs(self, enqueuer, fake_queue, content_store):
        for index in range(10):
            await content_store.create(f"content {index}", source_id=f"doc-{index}")
        
        assert await enqueuer.enqueue_stale(3) == 3
        # Most recently updated first
        assert [p["source_id"] for p in fake_queue.payloads()] == ["doc-9", "doc-8", "doc-7"]
