"""Shared fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("ENABLE_TRACE_LOGGING", "false")
os.environ.setdefault("VECTOR_BACKEND", "none")
os.environ.setdefault("CACHE_AUTO_MAINTENANCE", "false")
os.environ.setdefault("PRELOAD_MODELS", "false")

import pytest

from rag.embeddings import EmbeddingEngine
from rag.reranker import CrossEncoderReranker
from tests.fakes import KeywordCrossEncoder, KeywordEmbeddingModel


@pytest.fixture
def keyword_model():
    return KeywordEmbeddingModel()


@pytest.fixture
def embedding_engine(keyword_model):
    return EmbeddingEngine(
        model_name="keyword-embedder",
        model_factory=lambda device: keyword_model,
        devices=["cpu"]
    )


@pytest.fixture
def cross_encoder():
    return KeywordCrossEncoder()


@pytest.fixture
def reranker(cross_encoder):
    return CrossEncoderReranker(
        model_name="keyword-reranker",
        model_factory=lambda device: cross_encoder,
        devices=["cpu"]
    )
