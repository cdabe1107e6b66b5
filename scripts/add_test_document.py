"""
Script to add a test document and drain the queue once, to check the
sync pipeline end to end.

Usage:
    # Option 1: Run in Docker (recommended)
    sudo docker compose exec app python scripts/add_test_document.py
    
    # Option 2: Run locally with venv (ensure database is accessible)
    source venv/bin/activate
    python scripts/add_test_document.py
"""
import asyncio
import sys
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.database import engine
from sidecar_autopilot.services.pipeline import build_pipeline


async def add_test_document():
    """Create a document, drain the queue and check its embedding"""
    print(f"📡 Connecting to database...")
    print(f"   Host: {settings.POSTGRES_HOST}")
    print(f"   Port: {settings.POSTGRES_PORT}")
    print(f"   Database: {settings.POSTGRES_DB}")
    print()
    
    test_content = """
    Sidecar embeddings live in their own table, keyed by the source document.
    Every content change enqueues a job; the autopilot scan catches the rest.
    """
    
    pipeline = build_pipeline()
    try:
        record = await pipeline.content_store.create(test_content, {"source": "test"})
        print(f"✅ Added document {record.id} (hash {record.content_hash[:12]})")
        print(f"   Queue size: {await pipeline.queue.size()}")
        
        result = await pipeline.drain_loop.run(origin="script")
        print(f"\n🔄 Drain: {result.processed} processed, {result.errors} errors, {result.cycles} cycles")
        
        needs_update = await pipeline.hash_index.needs_update(record.id)
        print(f"   Embedding current: {not needs_update}")
        return not needs_update
    except Exception as e:
        print(f"\n❌ Error occurred: {type(e).__name__}")
        print(f"   Message: {e}")
        return False
    finally:
        await engine.dispose()


if __name__ == "__main__":
    print("=" * 60)
    print("Sidecar Embedding Autopilot - Test Document Adder")
    print("=" * 60)
    print()
    
    success = asyncio.run(add_test_document())
    
    if success:
        print("\n✅ Test document embedded successfully!")
        print('   Check status with: curl http://localhost:8000/v1/processing/status')
    else:
        print("\n❌ Test document was not embedded")
        sys.exit(1)
