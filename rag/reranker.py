"""
Cross-encoder re-ranking of retrieved passages.
Scores each (query, passage) pair jointly and keeps the top K.
"""

import asyncio
import math
import threading
import time
from typing import List, Optional, Sequence

import numpy as np
import torch
from transformers import AutoModelForSequenceClassification, AutoTokenizer

from config import settings
from models.errors import RerankError
from models.passage import Passage
from observability import trace_logger
from rag.model_loader import LazyModelLoader, ProgressCallback


class CrossEncoderRuntime:
    """Tokenizer and sequence-classification model pinned to one device."""

    def __init__(self, model_name: str, device: str, max_length: int = 512):
        self.device = device
        self.max_length = max_length
        self.tokenizer = AutoTokenizer.from_pretrained(
            model_name,
            cache_dir=settings.model_cache_dir,
            token=settings.hf_token
        )
        self.model = AutoModelForSequenceClassification.from_pretrained(
            model_name,
            cache_dir=settings.model_cache_dir,
            token=settings.hf_token,
            trust_remote_code=True
        )
        self.model.to(device)
        self.model.eval()

    def logits(self, query: str, texts: Sequence[str]) -> np.ndarray:
        """Raw relevance logits, one per text."""
        inputs = self.tokenizer(
            [query] * len(texts),
            list(texts),
            padding=True,
            truncation=True,
            max_length=self.max_length,
            return_tensors="pt"
        )
        inputs = {key: value.to(self.device) for key, value in inputs.items()}

        with torch.no_grad():
            output = self.model(**inputs).logits

        # Single-label heads give (n, 1); keep the first column
        return output.float().reshape(len(texts), -1)[:, 0].cpu().numpy()


def sigmoid(x: float) -> float:
    """Logistic function, clipped to avoid overflow."""
    x = max(-500.0, min(500.0, x))
    return 1.0 / (1.0 + math.exp(-x))


class CrossEncoderReranker:
    """Re-ranks passages with a cross-encoder model."""

    def __init__(
        self,
        model_name: str = None,
        model_factory=None,
        devices: Optional[List[str]] = None,
        batch_size: int = 32
    ):
        """
        Initialize the reranker. The model is not loaded until first use.

        Args:
            model_name: Hugging Face cross-encoder model name
            model_factory: Builds a runtime exposing logits(query, texts) for a device
            devices: Devices to try in order
            batch_size: Pairs scored per forward pass
        """
        self.model_name = model_name or settings.reranker_model_name
        self.batch_size = batch_size
        self._loader = LazyModelLoader(
            self.model_name,
            model_factory or (lambda device: CrossEncoderRuntime(self.model_name, device)),
            devices
        )
        self._inference_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._loader.is_loaded

    async def preload(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        await self._loader.get(progress_callback)

    async def rerank(
        self,
        query: str,
        passages: List[Passage],
        top_k: int = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> List[Passage]:
        """
        Re-rank passages by cross-encoder relevance.

        Args:
            query: The user query
            passages: Candidates from retrieval
            top_k: Number of passages to keep
            progress_callback: Receives model loading milestones

        Returns:
            At most top_k new passages, sorted by sigmoid score descending.
            Scores that cannot be produced count as 0.
        """
        if not passages:
            return []

        top_k = top_k if top_k is not None else settings.rag_rerank_limit
        runtime = await self._loader.get(progress_callback)
        started = time.perf_counter()

        try:
            raw = await asyncio.to_thread(
                self._score, runtime, query, [p.text for p in passages]
            )
        except Exception as e:
            trace_logger.error_occurred(
                error_type="rerank_error",
                error_message=str(e),
                context={"model_name": self.model_name, "num_candidates": len(passages)}
            )
            raise RerankError(f"Reranking failed: {e}") from e

        scores = []
        for i in range(len(passages)):
            value = float(raw[i]) if i < len(raw) else float("nan")
            scores.append(0.0 if math.isnan(value) else sigmoid(value))

        # sorted() is stable, so equal scores keep input order
        order = sorted(range(len(passages)), key=lambda i: scores[i], reverse=True)
        reranked = [passages[i].with_score(scores[i], "rerank") for i in order[:top_k]]

        trace_logger.rerank_performed(
            num_candidates=len(passages),
            num_results=len(reranked),
            duration_ms=(time.perf_counter() - started) * 1000
        )
        return reranked

    def _score(self, runtime, query: str, texts: List[str]) -> List[float]:
        scores: List[float] = []
        with self._inference_lock:
            for start in range(0, len(texts), self.batch_size):
                batch = texts[start:start + self.batch_size]
                scores.extend(float(s) for s in runtime.logits(query, batch))
        return scores
