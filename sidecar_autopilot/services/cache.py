"""
Redis-based cache of generated embeddings.

Keys combine the embedding model and the content fingerprint, so a
redelivered or duplicate job for unchanged content skips the provider call.
"""
import json
import logging
import os
from typing import List, Optional

import redis.asyncio as redis

from sidecar_autopilot.core.config import settings

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """Service for caching embeddings by content fingerprint."""
    
    def __init__(self, host: str = None, port: int = None, db: int = None, ttl_seconds: int = None):
        self.redis_client: Optional[redis.Redis] = None
        self.ttl_seconds = ttl_seconds or settings.EMBEDDING_CACHE_TTL_SECONDS
        
        # Detect Docker environment
        is_docker = os.path.exists('/.dockerenv') or os.environ.get('DOCKER_CONTAINER') == 'true'
        self.host = host or ('redis' if is_docker else settings.REDIS_HOST)
        self.port = port or settings.REDIS_PORT
        self.db = db if db is not None else settings.REDIS_DB + 2  # Use DB 2 for cache (0=Celery, 1=results)
    
    async def _get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self.redis_client is None:
            self.redis_client = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=None,
                decode_responses=False,
                socket_connect_timeout=2,
                socket_timeout=2
            )
        return self.redis_client
    
    def _key(self, model: str, content_fingerprint: str) -> str:
        return f"embedding:{model}:{content_fingerprint}"
    
    async def get_embedding(self, model: str, content_fingerprint: str) -> Optional[List[float]]:
        """Get cached embedding; any Redis error is treated as a miss."""
        try:
            client = await self._get_client()
            cached = await client.get(self._key(model, content_fingerprint))
            if cached:
                if isinstance(cached, bytes):
                    cached = cached.decode()
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Cache miss/error for embedding: {e}")
        return None
    
    async def set_embedding(self, model: str, content_fingerprint: str, embedding: List[float], ttl_seconds: int = None):
        """Cache embedding for content."""
        try:
            client = await self._get_client()
            ttl = ttl_seconds or self.ttl_seconds
            await client.setex(self._key(model, content_fingerprint), ttl, json.dumps(embedding))
        except Exception as e:
            logger.warning(f"Failed to cache embedding: {e}")
    
    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None


# Global cache service instance
embedding_cache = EmbeddingCache()
