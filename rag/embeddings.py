"""
Embedding generation with role prefixes.
Queries and documents are prefixed differently so retrieval is asymmetric.
"""

import asyncio
import threading
from typing import Callable, List, Literal, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from config import settings
from models.errors import EmbeddingError
from observability import trace_logger
from rag.model_loader import LazyModelLoader, ProgressCallback


EmbeddingRole = Literal["query", "document"]

ROLE_PREFIXES = {
    "query": "task: search result | query: ",
    "document": "title: none | text: ",
}


class EmbeddingEngine:
    """Turns text into unit-length dense vectors."""

    def __init__(
        self,
        model_name: str = None,
        model_factory: Optional[Callable[[str], object]] = None,
        devices: Optional[List[str]] = None,
        batch_size: int = 32
    ):
        """
        Initialize the engine. The model is not loaded until first use.

        Args:
            model_name: Sentence-transformers model name
            model_factory: Builds the model for a device; defaults to SentenceTransformer
            devices: Devices to try in order
            batch_size: Encode batch size
        """
        self.model_name = model_name or settings.embedding_model_name
        self.batch_size = batch_size
        self._loader = LazyModelLoader(
            self.model_name,
            model_factory or self._load_sentence_transformer,
            devices
        )
        self._encode_lock = threading.Lock()
        self._dimension: Optional[int] = None

    def _load_sentence_transformer(self, device: str) -> SentenceTransformer:
        return SentenceTransformer(
            self.model_name,
            cache_folder=settings.model_cache_dir,
            token=settings.hf_token,
            device=device
        )

    @property
    def is_loaded(self) -> bool:
        return self._loader.is_loaded

    @property
    def device(self) -> Optional[str]:
        return self._loader.device

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension, known once the first embedding is produced."""
        return self._dimension

    async def preload(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """Load the model ahead of the first query."""
        await self._loader.get(progress_callback)

    async def embed(
        self,
        text: str,
        role: EmbeddingRole = "query",
        progress_callback: Optional[ProgressCallback] = None
    ) -> np.ndarray:
        """
        Embed one text.

        Args:
            text: Non-empty text
            role: "query" for search queries, "document" for stored passages
            progress_callback: Receives model loading milestones

        Returns:
            Unit-length float32 vector
        """
        vectors = await self.embed_many([text], role, progress_callback)
        return vectors[0]

    async def embed_many(
        self,
        texts: List[str],
        role: EmbeddingRole = "query",
        progress_callback: Optional[ProgressCallback] = None
    ) -> np.ndarray:
        """Embed a batch of texts. Returns an (n, dimension) matrix."""
        if role not in ROLE_PREFIXES:
            raise ValueError(f"Unknown embedding role: {role}")
        if not texts:
            raise ValueError("No texts to embed")
        for text in texts:
            if not isinstance(text, str) or not text.strip():
                raise ValueError("Cannot embed empty text")

        model = await self._loader.get(progress_callback)
        prefixed = [ROLE_PREFIXES[role] + text for text in texts]

        try:
            raw = await asyncio.to_thread(self._encode, model, prefixed)
        except Exception as e:
            trace_logger.error_occurred(
                error_type="embedding_error",
                error_message=str(e),
                context={"model_name": self.model_name, "num_texts": len(texts), "role": role}
            )
            raise EmbeddingError(f"Embedding failed: {e}") from e

        matrix = np.atleast_2d(np.asarray(raw, dtype=np.float32))
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        matrix = np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)

        self._dimension = int(matrix.shape[1])
        return matrix

    def _encode(self, model, texts: List[str]):
        # Model instances are not safe for concurrent encode calls
        with self._encode_lock:
            return model.encode(
                texts,
                batch_size=self.batch_size,
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False
            )
