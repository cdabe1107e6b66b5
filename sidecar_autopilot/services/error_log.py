"""Append-only error records for failed embedding work."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, func

from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.models.embedding_error import EmbeddingErrorLog

logger = logging.getLogger(__name__)


class ErrorLog:
    """Writes ``embedding_error_log`` rows. ``record`` never raises."""
    
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory
    
    async def record(
        self,
        message: str,
        source_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        function_name: Optional[str] = None,
        queue_message_id: Optional[Any] = None,
    ) -> bool:
        """
        Append an error record.
        
        Args:
            message: Error message
            source_id: Source document the failure concerns, if any
            context: Additional JSON-serialisable context
            function_name: Component that failed
            queue_message_id: Queue message being processed, if any
            
        Returns:
            True if the record was stored, False otherwise
        """
        # Round-trip through json so datetimes and exceptions in context never break the insert
        safe_context = json.loads(json.dumps(context or {}, default=str))
        try:
            async with self._session_factory() as session:
                session.add(EmbeddingErrorLog(
                    source_id=str(source_id) if source_id is not None else None,
                    error_message=str(message)[:4000],
                    error_context=safe_context,
                    function_name=function_name,
                    queue_message_id=str(queue_message_id) if queue_message_id is not None else None,
                ))
                await session.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to record embedding error ({function_name}: {message}): {e}", exc_info=True)
            return False
    
    async def count_since(self, since: datetime) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(EmbeddingErrorLog).where(EmbeddingErrorLog.created_at > since)
            )
            return int(count or 0)
