"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from memory.local_store import LocalPassageStore
from rag.embeddings import EmbeddingEngine
from rag.pipeline import RagQueryOrchestrator
from rag.retriever import VectorRetriever
from rag.semantic_cache import CacheConfig, SemanticCache
from tests.fakes import KNOWLEDGE_BASE


@pytest.fixture
def local_store():
    return LocalPassageStore()


@pytest.fixture
def orchestrator(embedding_engine, reranker, local_store):
    return RagQueryOrchestrator(
        embedding_engine=embedding_engine,
        retriever=VectorRetriever(local_store=local_store, min_similarity=0.3),
        reranker=reranker,
        cache=SemanticCache(config=CacheConfig())
    )


@pytest.fixture
def client(orchestrator, local_store):
    app = create_app(orchestrator=orchestrator, local_store=local_store)
    with TestClient(app) as test_client:
        yield test_client


def load_knowledge_base(client):
    response = client.post(
        "/rag/local/asst-1/passages",
        json={"passages": [{"source_id": s, "text": t} for s, t in KNOWLEDGE_BASE]}
    )
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["embedding_model_loaded"] is False


def test_add_local_passages_embeds_missing_vectors(client, local_store):
    body = load_knowledge_base(client)

    assert body == {"assistant_id": "asst-1", "added": 3, "total": 3}
    assert all(p.vector is not None for p in local_store.get_passages("asst-1"))


def test_query_returns_context(client):
    load_knowledge_base(client)

    response = client.post("/rag/query", json={
        "query": "machine learning algorithms",
        "assistant_id": "asst-1"
    })

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "local"
    assert body["passages"][0]["source_id"] == "neural.txt"
    assert body["context"].startswith("From neural.txt:\n")
    assert body["from_cache"] is False


def test_repeated_query_hits_cache_and_shows_in_stats(client):
    load_knowledge_base(client)
    payload = {"query": "neural networks", "assistant_id": "asst-1"}

    client.post("/rag/query", json=payload)
    second = client.post("/rag/query", json=payload).json()
    stats = client.get("/rag/cache/stats").json()

    assert second["from_cache"] is True
    assert second["original_query"] == "neural networks"
    assert second["hit_count"] == 1
    assert stats["performance_metrics"]["cache_hits"] == 1
    assert stats["storage_stats"]["entries_by_assistant"] == {"asst-1": 1}


def test_query_for_unknown_assistant_is_empty(client):
    response = client.post("/rag/query", json={"query": "hello", "assistant_id": "nobody"})

    assert response.status_code == 200
    assert response.json()["context"] == ""
    assert response.json()["source"] == "empty"


def test_query_validation(client):
    response = client.post("/rag/query", json={"query": "", "assistant_id": "asst-1"})

    assert response.status_code == 422


def test_model_load_failure_returns_503(reranker, local_store):
    def fail(device):
        raise RuntimeError("weights not found")

    orchestrator = RagQueryOrchestrator(
        embedding_engine=EmbeddingEngine("missing", model_factory=fail, devices=["cpu"]),
        retriever=VectorRetriever(local_store=local_store),
        reranker=reranker,
        cache=None
    )
    app = create_app(orchestrator=orchestrator, local_store=local_store)

    with TestClient(app) as client:
        response = client.post("/rag/query", json={"query": "hello", "assistant_id": "asst-1"})

    assert response.status_code == 503
    assert "weights not found" in response.json()["detail"]


def test_clear_cache_and_maintenance(client):
    load_knowledge_base(client)
    client.post("/rag/query", json={"query": "neural networks", "assistant_id": "asst-1"})

    cleared = client.delete("/rag/cache/asst-1")
    maintenance = client.post("/rag/cache/maintenance")

    assert cleared.json() == {"assistant_id": "asst-1", "removed_count": 1}
    assert maintenance.status_code == 200
    assert maintenance.json()["removed_count"] == 0
    assert maintenance.json()["storage_stats"]["total_entries"] == 0


def test_update_cache_config_ignores_invalid_values(client):
    response = client.patch("/rag/cache/config", json={
        "similarity_threshold": 2.0,
        "max_entries_per_assistant": 10
    })

    assert response.status_code == 200
    assert response.json() == {
        "similarity_threshold": 0.9,
        "max_entries_per_assistant": 10,
        "expiration_days": 30
    }


def test_reset_metrics(client):
    client.post("/rag/query", json={"query": "hello", "assistant_id": "asst-1"})

    assert client.post("/rag/metrics/reset").status_code == 200
    stats = client.get("/rag/cache/stats").json()
    assert stats["performance_metrics"]["total_queries"] == 0
