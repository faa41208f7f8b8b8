"""
Remote vector backends.
Assistant-scoped nearest-neighbour search over a vector-indexed store.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import chromadb
from chromadb.config import Settings as ChromaSettings

from config import settings
from observability import trace_logger


@dataclass
class RemoteHit:
    """One row returned by a remote vector search, pre-scored server-side."""
    text: str
    source_id: str
    similarity: float  # 1 - cosine_distance


def make_chunk_id(assistant_id: str, source_id: str, text: str) -> str:
    """Stable chunk identifier for upserts."""
    digest = hashlib.sha256(f"{assistant_id}\x00{source_id}\x00{text}".encode()).hexdigest()
    return digest[:32]


class RemoteVectorBackend(ABC):
    """Abstract interface for remote vector-indexed stores."""

    name: str = "remote"

    @abstractmethod
    async def search(
        self,
        assistant_id: str,
        query_vector: Sequence[float],
        top_k: int
    ) -> List[RemoteHit]:
        """Top-K nearest neighbours scoped to one assistant."""
        pass

    @abstractmethod
    async def upsert_vector(
        self,
        source_id: str,
        assistant_id: str,
        text: str,
        vector: Sequence[float],
        chunk_id: Optional[str] = None
    ) -> str:
        """Insert or replace one passage vector. Returns the chunk id."""
        pass

    @abstractmethod
    async def count(self, assistant_id: str) -> int:
        """Number of passages stored for an assistant."""
        pass

    @abstractmethod
    async def delete_assistant(self, assistant_id: str) -> None:
        """Remove every passage of an assistant."""
        pass


class ChromaVectorBackend(RemoteVectorBackend):
    """ChromaDB-backed vector store using cosine space."""

    name = "chroma"

    def __init__(
        self,
        client=None,
        collection_name: str = None,
        host: str = None,
        port: int = None,
        persist_directory: str = None
    ):
        """
        Initialize the Chroma backend.

        Args:
            client: Existing chromadb client (takes precedence)
            collection_name: Collection holding all assistants' passages
            host: Chroma server host; a persistent local client is used when unset
            port: Chroma server port
            persist_directory: Directory for the persistent local client
        """
        host = host if host is not None else settings.chroma_host

        if client is not None:
            self.client = client
        elif host:
            self.client = chromadb.HttpClient(
                host=host,
                port=port or settings.chroma_port,
                settings=ChromaSettings(anonymized_telemetry=False)
            )
        else:
            self.persist_directory = persist_directory or settings.chroma_persist_dir
            Path(self.persist_directory).mkdir(parents=True, exist_ok=True)
            self.client = chromadb.PersistentClient(
                path=self.persist_directory,
                settings=ChromaSettings(anonymized_telemetry=False)
            )

        # Vectors are always supplied by the caller, never embedded by Chroma
        self.collection = self.client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine", "description": "Assistant knowledge-base passages"},
            embedding_function=None
        )

    def _query(self, assistant_id: str, query_vector: List[float], top_k: int) -> List[RemoteHit]:
        results = self.collection.query(
            query_embeddings=[query_vector],
            n_results=top_k,
            where={"assistant_id": assistant_id},
            include=["documents", "metadatas", "distances"]
        )

        hits = []
        if results and results.get("ids") and len(results["ids"]) > 0:
            for i in range(len(results["ids"][0])):
                metadata = results["metadatas"][0][i] or {}
                hits.append(RemoteHit(
                    text=results["documents"][0][i],
                    source_id=metadata.get("source_id", "unknown"),
                    similarity=1.0 - results["distances"][0][i]  # Convert distance to similarity
                ))
        return hits

    async def search(
        self,
        assistant_id: str,
        query_vector: Sequence[float],
        top_k: int
    ) -> List[RemoteHit]:
        return await asyncio.to_thread(
            self._query, assistant_id, [float(v) for v in query_vector], top_k
        )

    async def upsert_vector(
        self,
        source_id: str,
        assistant_id: str,
        text: str,
        vector: Sequence[float],
        chunk_id: Optional[str] = None
    ) -> str:
        chunk_id = chunk_id or make_chunk_id(assistant_id, source_id, text)
        try:
            await asyncio.to_thread(
                self.collection.upsert,
                ids=[chunk_id],
                embeddings=[[float(v) for v in vector]],
                documents=[text],
                metadatas=[{"assistant_id": assistant_id, "source_id": source_id}]
            )
        except Exception as e:
            trace_logger.error_occurred(
                error_type="vector_upsert_error",
                error_message=str(e),
                context={"backend": self.name, "assistant_id": assistant_id, "source_id": source_id}
            )
            raise
        return chunk_id

    async def count(self, assistant_id: str) -> int:
        result = await asyncio.to_thread(
            self.collection.get, where={"assistant_id": assistant_id}, include=[]
        )
        return len(result.get("ids") or [])

    async def delete_assistant(self, assistant_id: str) -> None:
        await asyncio.to_thread(self.collection.delete, where={"assistant_id": assistant_id})
        trace_logger.info(
            "Deleted assistant passages from vector store",
            backend=self.name,
            assistant_id=assistant_id
        )
