"""
Script to ingest passages into the remote vector store.

Reads a JSONL file of {"source_id": ..., "text": ...} records, embeds each
text as a document and upserts it for one assistant. The assistant's
semantic cache is cleared afterwards so stale answers are not served.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from memory.cache_store import SQLCacheStore
from rag.embeddings import EmbeddingEngine
from rag.factory import build_remote_backend
from rag.semantic_cache import SemanticCache
from observability import trace_logger


def load_records(path: Path):
    """Read JSONL records, skipping blank lines."""
    records = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if not record.get("source_id") or not record.get("text", "").strip():
                print(f"Skipping line {line_number}: source_id and text are required")
                continue
            records.append(record)
    return records


async def ingest_passages(
    passages_file: str,
    assistant_id: str,
    batch_size: int = 32,
    replace_existing: bool = False
) -> bool:
    """
    Ingest passages for an assistant.

    Args:
        passages_file: Path to the JSONL file
        assistant_id: Owning assistant
        batch_size: Texts embedded per batch
        replace_existing: Delete the assistant's passages first

    Returns:
        True on success
    """
    path = Path(passages_file)
    if not path.exists():
        print(f"Error: Passages file not found: {passages_file}")
        return False

    backend = build_remote_backend()
    if backend is None:
        print("Error: VECTOR_BACKEND=none; nothing to ingest into")
        return False

    records = load_records(path)
    print(f"Loaded {len(records)} passages from {path.absolute()}")
    if not records:
        print("Warning: No passages to ingest")
        return False

    engine = EmbeddingEngine()

    try:
        if hasattr(backend, "ensure_schema"):
            await backend.ensure_schema()

        if replace_existing:
            print("\nClearing existing passages...")
            await backend.delete_assistant(assistant_id)

        print("\nEmbedding and upserting...")
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            vectors = await engine.embed_many([r["text"] for r in batch], role="document")
            for record, vector in zip(batch, vectors):
                await backend.upsert_vector(
                    record["source_id"],
                    assistant_id,
                    record["text"],
                    vector,
                    chunk_id=record.get("id")
                )
            print(f"  {min(start + batch_size, len(records))}/{len(records)}")

        total = await backend.count(assistant_id)
        print(f"\n✓ Successfully ingested {len(records)} passages")
        print(f"✓ Vector store passage count for {assistant_id}: {total}")

    except Exception as e:
        print(f"\n✗ Error during ingestion: {str(e)}")
        trace_logger.error_occurred(
            error_type="ingestion_error",
            error_message=str(e),
            context={"assistant_id": assistant_id}
        )
        return False

    if settings.cache_enabled and settings.cache_database_url:
        cache = SemanticCache(store=SQLCacheStore())
        removed = await cache.clear_assistant_cache(assistant_id)
        print(f"✓ Cleared {removed} cached queries for {assistant_id}")

    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest passages into the vector store")
    parser.add_argument("passages_file", help="JSONL file of {source_id, text} records")
    parser.add_argument("--assistant-id", required=True, help="Owning assistant")
    parser.add_argument("--batch-size", type=int, default=32)
    parser.add_argument("--replace", action="store_true", help="Delete existing passages first")
    args = parser.parse_args()

    print("=" * 60)
    print("Knowledge Base Ingestion Script")
    print("=" * 60)

    success = asyncio.run(ingest_passages(
        args.passages_file,
        args.assistant_id,
        batch_size=args.batch_size,
        replace_existing=args.replace
    ))

    if success:
        print("\n✓ Ingestion completed successfully!")
    else:
        print("\n✗ Ingestion failed. Check errors above.")
        sys.exit(1)
