"""Tests for the libSQL HTTP backend."""

import json

import httpx
import pytest

from memory.libsql_backend import (
    LibSQLVectorBackend, SEARCH_SQL, UPSERT_SQL, vector_from_string, vector_to_string
)
from models.errors import RemoteBackendError


def ok_result(cols, rows):
    return {
        "results": [
            {"type": "ok", "response": {"type": "execute", "result": {
                "cols": [{"name": c} for c in cols],
                "rows": rows
            }}},
            {"type": "ok", "response": {"type": "close"}}
        ]
    }


def make_backend(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LibSQLVectorBackend(
        url="libsql://kb-example.turso.io",
        auth_token="secret",
        client=client
    )


@pytest.mark.asyncio
async def test_search_sends_statement_and_parses_rows():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=ok_result(
            ["file_name", "content", "similarity"],
            [
                [{"type": "text", "value": "a.md"}, {"type": "text", "value": "alpha"}, {"type": "float", "value": 0.82}],
                [{"type": "text", "value": "b.md"}, {"type": "text", "value": "beta"}, {"type": "null"}],
            ]
        ))

    backend = make_backend(handler)
    hits = await backend.search("asst-1", [0.5, 0.25], 7)

    [request] = requests
    assert str(request.url) == "https://kb-example.turso.io/v2/pipeline"
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)
    stmt = body["requests"][0]["stmt"]
    assert stmt["sql"] == SEARCH_SQL
    assert stmt["args"] == [
        {"type": "text", "value": "[0.5,0.25]"},
        {"type": "text", "value": "asst-1"},
        {"type": "integer", "value": "7"},
    ]
    assert body["requests"][1] == {"type": "close"}

    assert [(h.source_id, h.text) for h in hits] == [("a.md", "alpha"), ("b.md", "beta")]
    assert hits[0].similarity == pytest.approx(0.82)
    assert hits[1].similarity == 0.0


@pytest.mark.asyncio
async def test_statement_error_raises():
    def handler(request):
        return httpx.Response(200, json={"results": [
            {"type": "error", "error": {"message": "no such table: rag_chunks"}}
        ]})

    with pytest.raises(RemoteBackendError, match="no such table"):
        await make_backend(handler).search("asst-1", [1.0], 5)


@pytest.mark.asyncio
async def test_http_error_raises():
    def handler(request):
        return httpx.Response(401, json={"error": "unauthorized"})

    with pytest.raises(RemoteBackendError, match="401"):
        await make_backend(handler).search("asst-1", [1.0], 5)


@pytest.mark.asyncio
async def test_upsert_uses_vector_column():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=ok_result([], []))

    chunk_id = await make_backend(handler).upsert_vector("doc.md", "asst-1", "text", [1.0, 0.0], chunk_id="c1")

    assert chunk_id == "c1"
    stmt = bodies[0]["requests"][0]["stmt"]
    assert stmt["sql"] == UPSERT_SQL
    assert [a["value"] for a in stmt["args"][:5]] == ["c1", "asst-1", "doc.md", "text", "[1.0,0.0]"]
    assert stmt["args"][5]["type"] == "integer"


@pytest.mark.asyncio
async def test_count():
    def handler(request):
        return httpx.Response(200, json=ok_result(["count"], [[{"type": "integer", "value": "12"}]]))

    assert await make_backend(handler).count("asst-1") == 12


def test_missing_url_is_rejected():
    with pytest.raises(ValueError):
        LibSQLVectorBackend(url="", client=httpx.AsyncClient())


def test_vector_string_format():
    assert vector_to_string([1, 0.5, -2.25]) == "[1.0,0.5,-2.25]"
    assert vector_from_string("[1.0, 0.5,-2.25]") == [1.0, 0.5, -2.25]
    assert vector_from_string("[]") == []


@pytest.mark.asyncio
async def test_ensure_schema_sizes_vector_column():
    statements = []

    def handler(request):
        statements.append(json.loads(request.content)["requests"][0]["stmt"]["sql"])
        return httpx.Response(200, json=ok_result([], []))

    backend = make_backend(handler)
    backend.dimension = 3
    await backend.ensure_schema()

    assert "F32_BLOB(3)" in statements[0]
    assert statements[1].startswith("CREATE INDEX IF NOT EXISTS")
