"""Application configuration from environment variables."""
import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App Configuration
    APP_NAME: str = "sidecar-embedding-autopilot"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"
    
    # FastAPI
    HOST: str = "0.0.0.0"
    PORT: int = int(os.getenv("PORT", "8000"))
    WORKERS: int = 4
    
    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "sidecar_embeddings"
    POSTGRES_USER: str = "sidecar_user"
    POSTGRES_PASSWORD: str = "sidecar_password"
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE_SECONDS: int = 3600
    
    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_URL: Optional[str] = None
    
    def get_database_url(self) -> str:
        """Get or construct database URL from components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )
    
    def get_redis_url(self) -> str:
        """Get or construct Redis URL from components."""
        if self.REDIS_URL:
            return self.REDIS_URL
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
    
    # Celery (defaults, can be overridden by .env or docker-compose)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    
    # Embedder
    OPENAI_API_KEY: Optional[str] = None
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    VECTOR_DIMENSION: int = 384
    EMBEDDING_MAX_CHARS: int = 2000  # Longer content is truncated before embedding
    EMBEDDING_CACHE_TTL_SECONDS: int = 86400
    
    # Job queue
    QUEUE_NAME: str = "embedding_jobs"
    QUEUE_VISIBILITY_TIMEOUT_SECONDS: int = 300
    QUEUE_MAX_DELIVERIES: int = 3  # Dead-letter a failing job on this delivery
    
    # Drain loop
    DRAIN_TIME_BUDGET_SECONDS: float = 30.0
    DRAIN_CONTINUE_FRACTION: float = 0.8
    DRAIN_FULL_BATCH_PAUSE_SECONDS: float = 0.1
    DRAIN_MAX_BATCH_SIZE: int = 5
    DRAIN_SELF_CONTINUE: bool = True
    
    # Autopilot
    AUTOPILOT_INTERVAL_SECONDS: float = 30.0
    AUTOPILOT_LOAD_THRESHOLD: int = 1000  # Don't scan if queue is this large
    AUTOPILOT_SCAN_BATCH_SIZE: int = 500
    ENQUEUE_COMMIT_BATCH_SIZE: int = 100
    HIGH_PRIORITY_CONTENT_LENGTH: int = 5000
    SCAN_ADVISORY_LOCK: bool = True
    SCAN_LOCK_NAME: str = "autopilot_sync"
    
    # Monitoring
    STATUS_STALE_SCAN_LIMIT: int = 10000
    
    class Config:
        """Pydantic config."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


settings = Settings()
