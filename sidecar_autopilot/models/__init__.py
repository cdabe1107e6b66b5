from sidecar_autopilot.models.source_document import SourceDocument
from sidecar_autopilot.models.document_embedding import DocumentEmbedding
from sidecar_autopilot.models.embedding_job import EmbeddingJob, ArchivedEmbeddingJob
from sidecar_autopilot.models.embedding_error import EmbeddingErrorLog

__all__ = [
    "SourceDocument",
    "DocumentEmbedding",
    "EmbeddingJob",
    "ArchivedEmbeddingJob",
    "EmbeddingErrorLog",
]
