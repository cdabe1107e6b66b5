"""Source document request and response schemas."""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class DocumentCreate(BaseModel):
    """Document creation schema."""
    content: str = Field(..., description="Document content")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Document metadata")


class DocumentUpdate(BaseModel):
    """Partial document update; omitted fields are left unchanged."""
    content: Optional[str] = Field(default=None, description="New document content")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Replacement metadata")


class DocumentResponse(BaseModel):
    """Document response schema."""
    id: str = Field(..., description="Document ID")
    content: str = Field(..., description="Document content")
    content_hash: str = Field(..., description="SHA-256 fingerprint of the content")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Document metadata")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last update timestamp")
    
    class Config:
        from_attributes = True


class DocumentListResponse(BaseModel):
    """Document list response schema."""
    documents: List[DocumentResponse] = Field(..., description="List of documents")
    total: int = Field(..., description="Number of documents returned")


class EmbeddingStatusResponse(BaseModel):
    """Whether a document's embedding matches its content."""
    document_id: str
    needs_update: bool
    source_fingerprint: Optional[str] = None
    embedding_model: Optional[str] = None
    embedded_at: Optional[datetime] = None
