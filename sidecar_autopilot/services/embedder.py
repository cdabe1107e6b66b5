import logging
from typing import List, Optional

from langchain_openai import OpenAIEmbeddings
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.exceptions import ModelError
from sidecar_autopilot.services.cache import EmbeddingCache
from sidecar_autopilot.services.fingerprint import fingerprint

logger = logging.getLogger(__name__)


class Embedder:
    """Generates fixed-dimension embeddings for document content."""
    
    def __init__(
        self,
        model: str = None,
        dimension: int = None,
        max_chars: int = None,
        cache: Optional[EmbeddingCache] = None,
        api_key: Optional[str] = None,
    ):
        self.model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.VECTOR_DIMENSION
        self.max_chars = max_chars or settings.EMBEDDING_MAX_CHARS
        self.cache = cache
        self._api_key = api_key or settings.OPENAI_API_KEY
        self._client: Optional[OpenAIEmbeddings] = None
    
    def _get_client(self) -> OpenAIEmbeddings:
        """Create the provider client on first use so workers start without credentials."""
        if self._client is None:
            self._client = OpenAIEmbeddings(
                model=self.model,
                dimensions=self.dimension,
                openai_api_key=self._api_key,
            )
        return self._client
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_not_exception_type(ModelError),
        reraise=True,
    )
    async def _embed_with_retry(self, text: str) -> List[float]:
        """Call the provider, retrying transient failures"""
        try:
            return await self._get_client().aembed_query(text)
        except Exception as e:
            logger.error(f"Error generating embedding (retrying): {e}")
            raise
    
    def _prepare(self, text: str) -> str:
        if len(text) > self.max_chars:
            return text[:self.max_chars] + "..."
        return text
    
    async def embed(self, text: str) -> List[float]:
        """
        Embed ``text``.
        
        Raises:
            ModelError: the text is empty or the provider returned a vector
                of the wrong dimension
        """
        # Whitespace-only content is still content; only "" has nothing to embed
        if not text:
            raise ModelError("Cannot embed empty text")
        
        content_fingerprint = fingerprint(text)
        if self.cache is not None:
            cached = await self.cache.get_embedding(self.model, content_fingerprint)
            if cached and len(cached) == self.dimension:
                logger.debug(f"Cache hit for embedding {content_fingerprint[:12]}")
                return cached
        
        vector = await self._embed_with_retry(self._prepare(text))
        if not vector or len(vector) != self.dimension:
            got = len(vector) if vector else None
            raise ModelError(
                f"Generated embedding is invalid. Expected {self.dimension}-dimensional vector, got: {got}"
            )
        
        vector = [float(v) for v in vector]
        if self.cache is not None:
            await self.cache.set_embedding(self.model, content_fingerprint, vector)
        return vector
