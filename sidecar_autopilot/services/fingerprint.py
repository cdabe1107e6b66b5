"""Content fingerprints used for change detection."""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def fingerprint(content: Optional[str]) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content.

    Stable across processes and runtimes; ``None`` hashes like ``""``.
    """
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


class HashIndex:
    """Compares a source record's current fingerprint with its artifact's."""
    
    def __init__(self, content_store, sidecar_store):
        self.content_store = content_store
        self.sidecar_store = sidecar_store
    
    async def needs_update(self, source_id) -> bool:
        """
        Check whether the artifact for ``source_id`` must be regenerated.
        
        Returns True when no artifact exists or the stored fingerprint
        differs from the fingerprint of the current content. A source
        record that does not exist never needs an update.
        """
        record = await self.content_store.get(source_id)
        if record is None:
            return False
        
        stored = await self.sidecar_store.get_fingerprint(source_id)
        if stored is None:
            return True
        
        # Recompute rather than trusting content_hash so a drifted hash column is caught too
        current = fingerprint(record.content)
        if current != stored:
            logger.debug(f"Fingerprint drift for {source_id}: stored={stored[:12]} current={current[:12]}")
            return True
        return False
