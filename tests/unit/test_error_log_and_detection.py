"""Unit tests for the error log, change detector and status service."""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from sidecar_autopilot.services.change_detector import ChangeDetector
from sidecar_autopilot.services.error_log import ErrorLog
from sidecar_autopilot.services.monitoring import StatusService


class _Rows:
    """Async iterable standing in for a streamed result."""
    
    def __init__(self, rows):
        self._rows = list(rows)
    
    def __aiter__(self):
        return self._iter()
    
    async def _iter(self):
        for row in self._rows:
            yield row


@pytest.mark.unit
class TestErrorLog:
    """Test cases for ErrorLog."""
    
    @pytest.mark.asyncio
    async def test_record(self, session_factory, mock_postgres_session):
        error_log = ErrorLog(session_factory)
        
        stored = await error_log.record(
            "provider timeout",
            source_id="doc-a",
            context={"enqueued_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            function_name="process_embedding_queue",
            queue_message_id=7,
        )
        
        assert stored is True
        row = mock_postgres_session.add.call_args.args[0]
        assert row.source_id == "doc-a"
        assert row.queue_message_id == "7"
        assert row.error_context == {"enqueued_at": "2024-01-01 00:00:00+00:00"}
    
    @pytest.mark.asyncio
    async def test_record_never_raises(self, session_factory, mock_postgres_session):
        mock_postgres_session.commit = AsyncMock(side_effect=RuntimeError("db down"))
        
        assert await ErrorLog(session_factory).record("boom") is False
    
    @pytest.mark.asyncio
    async def test_count_since(self, session_factory, mock_postgres_session):
        mock_postgres_session.scalar = AsyncMock(return_value=5)
        
        assert await ErrorLog(session_factory).count_since(datetime.now(timezone.utc)) == 5


@pytest.mark.unit
class TestChangeDetector:
    """Test cases for ChangeDetector."""
    
    @pytest.mark.asyncio
    async def test_find_stale(self, session_factory, mock_postgres_session):
        rows = [
            MagicMock(id="doc-b", content="beta", content_hash="hb", source_fingerprint=None, content_length=4),
            MagicMock(id="doc-a", content="alpha", content_hash="ha", source_fingerprint="old", content_length=5),
        ]
        mock_postgres_session.stream = AsyncMock(return_value=_Rows(rows))
        
        stale = await ChangeDetector(session_factory).find_stale(limit=10)
        
        assert [r.source_id for r in stale] == ["doc-b", "doc-a"]
        assert stale[0].stored_fingerprint is None
        assert stale[1].current_fingerprint == "ha"
        assert stale[1].content_length == 5
    
    @pytest.mark.asyncio
    async def test_count_stale(self, session_factory, mock_postgres_session):
        mock_postgres_session.scalar = AsyncMock(return_value=12)
        
        assert await ChangeDetector(session_factory).count_stale(limit=100) == 12


@pytest.mark.unit
class TestStatusService:
    """Test cases for StatusService."""
    
    @pytest.fixture
    def queue(self):
        queue = MagicMock()
        queue.stats = AsyncMock(return_value={
            "total_pending": 3,
            "oldest_job": None,
            "newest_job": None,
            "autopilot_jobs_last_hour": 2,
        })
        return queue
    
    @pytest.fixture
    def detector(self):
        detector = MagicMock()
        detector.count_stale = AsyncMock(return_value=4)
        return detector
    
    @pytest.mark.asyncio
    async def test_get_status(self, queue, detector, error_log, session_factory, mock_postgres_session):
        # total, artifacts, valid artifacts, fresh artifacts
        mock_postgres_session.scalar = AsyncMock(side_effect=[8, 7, 7, 6])
        await error_log.record("boom")
        
        status = await StatusService(queue, detector, error_log, session_factory).get_status()
        
        assert status.pending_jobs == 3
        assert status.total_source_records == 8
        assert status.artifacts_count == 7
        assert status.valid_artifacts_count == 7
        assert status.stale_count == 4
        assert status.errors_last_hour == 1
        assert status.errors_last_24h == 1
        assert status.coverage_percent == 75.0
        assert status.autopilot_jobs_last_hour == 2
    
    @pytest.mark.asyncio
    async def test_no_documents_is_full_coverage(self, queue, detector, error_log, session_factory, mock_postgres_session):
        mock_postgres_session.scalar = AsyncMock(side_effect=[0, 0, 0, 0])
        
        status = await StatusService(queue, detector, error_log, session_factory).get_status()
        
        assert status.coverage_percent == 100.0
