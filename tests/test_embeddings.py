"""Tests for the embedding engine."""

import numpy as np
import pytest

from models.errors import EmbeddingError, ModelLoadError
from rag.embeddings import ROLE_PREFIXES, EmbeddingEngine


@pytest.mark.asyncio
async def test_embed_returns_unit_vector(embedding_engine):
    vector = await embedding_engine.embed("machine learning algorithms")

    assert vector.dtype == np.float32
    assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-5)
    assert embedding_engine.dimension == vector.shape[0]


@pytest.mark.asyncio
async def test_role_prefixes_are_applied(embedding_engine, keyword_model):
    await embedding_engine.embed("hello", role="query")
    await embedding_engine.embed("hello", role="document")

    assert keyword_model.calls[0] == [ROLE_PREFIXES["query"] + "hello"]
    assert keyword_model.calls[1] == [ROLE_PREFIXES["document"] + "hello"]
    assert keyword_model.calls[0][0].startswith("task: search result | query: ")
    assert keyword_model.calls[1][0].startswith("title: none | text: ")


@pytest.mark.asyncio
async def test_embedding_is_deterministic(embedding_engine):
    first = await embedding_engine.embed("neural networks")
    second = await embedding_engine.embed("neural networks")

    assert np.array_equal(first, second)


@pytest.mark.asyncio
async def test_embed_many_returns_matrix(embedding_engine):
    matrix = await embedding_engine.embed_many(["cats", "pasta sauce", "refund"], role="document")

    assert matrix.shape[0] == 3
    assert np.allclose(np.linalg.norm(matrix, axis=1), 1.0, atol=1e-5)


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   "])
async def test_empty_text_is_rejected(embedding_engine, text):
    with pytest.raises(ValueError):
        await embedding_engine.embed(text)


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(embedding_engine):
    with pytest.raises(ValueError):
        await embedding_engine.embed("hello", role="passage")


@pytest.mark.asyncio
async def test_model_is_loaded_lazily(embedding_engine):
    assert not embedding_engine.is_loaded

    await embedding_engine.embed("hello")

    assert embedding_engine.is_loaded
    assert embedding_engine.device == "cpu"


@pytest.mark.asyncio
async def test_inference_failure_raises_embedding_error():
    class BrokenModel:
        def encode(self, texts, **kwargs):
            raise RuntimeError("out of memory")

    engine = EmbeddingEngine("broken", model_factory=lambda device: BrokenModel(), devices=["cpu"])

    with pytest.raises(EmbeddingError):
        await engine.embed("hello")


@pytest.mark.asyncio
async def test_load_failure_raises_model_load_error():
    def fail(device):
        raise RuntimeError(f"no {device}")

    engine = EmbeddingEngine("missing", model_factory=fail, devices=["cuda", "cpu"])

    with pytest.raises(ModelLoadError) as exc_info:
        await engine.preload()

    assert "no cuda" in str(exc_info.value)
    assert "no cpu" in str(exc_info.value)
