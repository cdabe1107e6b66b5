"""Source document endpoints.

Writes go through the content store, so every content change enqueues its
own embedding job.
"""
from fastapi import APIRouter, Depends, HTTPException, Query

from sidecar_autopilot.api.deps import get_pipeline
from sidecar_autopilot.schemas.document import (
    DocumentCreate,
    DocumentUpdate,
    DocumentResponse,
    DocumentListResponse,
    EmbeddingStatusResponse,
)
from sidecar_autopilot.services.pipeline import Pipeline

router = APIRouter(prefix="/documents", tags=["documents"])


def _to_response(record) -> DocumentResponse:
    return DocumentResponse(
        id=record.id,
        content=record.content,
        content_hash=record.content_hash,
        metadata=record.metadata,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.get("/", response_model=DocumentListResponse)
async def list_documents(
    limit: int = Query(default=100, ge=1, le=1000),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """List documents with content, most recently updated first."""
    records = await pipeline.content_store.list_eligible(limit)
    return DocumentListResponse(documents=[_to_response(r) for r in records], total=len(records))


@router.post("/", response_model=DocumentResponse, status_code=201)
async def create_document(
    document: DocumentCreate,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Create a document."""
    record = await pipeline.content_store.create(document.content, document.metadata)
    return _to_response(record)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Get a specific document."""
    record = await pipeline.content_store.get(document_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_response(record)


@router.patch("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str,
    update: DocumentUpdate,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Update a document's content and/or metadata."""
    record = await pipeline.content_store.update(document_id, content=update.content, metadata=update.metadata)
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_response(record)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Delete a document and its embedding."""
    if not await pipeline.content_store.delete(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "deleted", "id": document_id}


@router.get("/{document_id}/embedding", response_model=EmbeddingStatusResponse)
async def get_embedding_status(
    document_id: str,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Whether the document's embedding is current."""
    record = await pipeline.content_store.get(document_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    artifact = await pipeline.sidecar_store.get(record.id)
    return EmbeddingStatusResponse(
        document_id=record.id,
        needs_update=await pipeline.hash_index.needs_update(record.id),
        source_fingerprint=artifact.fingerprint if artifact else None,
        embedding_model=artifact.model if artifact else None,
        embedded_at=artifact.updated_at if artifact else None,
    )
