import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sidecar_autopilot.api.v1 import router as v1_router
from sidecar_autopilot.core.middleware import LoggingMiddleware

app = FastAPI(
    title="Sidecar Embedding Autopilot",
    description="Keeps document embeddings in sync with their source content",
    version="1.0.0"
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.get("/")
async def root():
    return {
        "message": "Sidecar Embedding Autopilot API",
        "environment": os.getenv("ENVIRONMENT", "unknown"),
        "database": os.getenv("POSTGRES_HOST", "unknown"),
        "docs": "/docs",
        "health": "/v1/health"
    }
