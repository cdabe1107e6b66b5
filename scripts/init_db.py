"""Database initialization script."""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text

from sidecar_autopilot.core.database import engine, Base
from sidecar_autopilot import models  # noqa: F401  registers the tables


async def init_db():
    """Initialize database schema."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("✓ Database schema created successfully")


if __name__ == "__main__":
    asyncio.run(init_db())
