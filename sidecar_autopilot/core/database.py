from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from contextlib import asynccontextmanager
import logging
import os
import re
from dotenv import load_dotenv

load_dotenv()

from sidecar_autopilot.core.config import settings

logger = logging.getLogger(__name__)

# Get database URL - environment variables from docker-compose override .env
DATABASE_URL = settings.get_database_url()

# Mask password in log
masked_url = re.sub(r"//([^:/@]+):[^@]*@", r"//\1:***@", DATABASE_URL)
logger.info(f"Database connection URL: {masked_url}")

CONNECT_ARGS = {
    "server_settings": {
        "application_name": settings.APP_NAME,
        "tcp_keepalives_idle": "600",
        "tcp_keepalives_interval": "30",
        "tcp_keepalives_count": "3",
    }
}

engine = create_async_engine(
    DATABASE_URL,
    echo=True if os.getenv("DEBUG") == "True" and os.getenv("SQL_ECHO") == "True" else False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,  # Verify connections before using
    pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
    connect_args=CONNECT_ARGS,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


@asynccontextmanager
async def get_async_session():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_db():
    async with get_async_session() as session:
        yield session
