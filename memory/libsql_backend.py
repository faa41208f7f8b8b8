"""
libSQL (Turso) vector backend over the HTTP pipeline API.
Similarity is computed server-side with vector_distance_cos.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import settings
from memory.vector_backend import RemoteHit, RemoteVectorBackend, make_chunk_id
from models.errors import RemoteBackendError
from observability import trace_logger


SEARCH_SQL = (
    "SELECT file_name, content, "
    "1 - vector_distance_cos(embedding, vector(?)) AS similarity "
    "FROM rag_chunks WHERE assistant_id = ? "
    "ORDER BY similarity DESC LIMIT ?"
)

UPSERT_SQL = (
    "INSERT OR REPLACE INTO rag_chunks "
    "(id, assistant_id, file_name, content, embedding, created_at) "
    "VALUES (?, ?, ?, ?, vector(?), ?)"
)


def vector_to_string(vector: Sequence[float]) -> str:
    """Serialize a vector as the bracketed float list libSQL's vector() accepts."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def vector_from_string(value: str) -> List[float]:
    """Parse a bracketed (or bare) comma-separated float list."""
    stripped = value.strip().lstrip("[").rstrip("]").strip()
    if not stripped:
        return []
    return [float(part) for part in stripped.split(",")]


def _arg(value: Any) -> Dict[str, Any]:
    """Encode one statement argument for the pipeline API."""
    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "integer", "value": str(int(value))}
    if isinstance(value, int):
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    return {"type": "text", "value": str(value)}


def _value(cell: Dict[str, Any]) -> Any:
    """Decode one result cell."""
    cell_type = cell.get("type")
    if cell_type == "null":
        return None
    if cell_type == "integer":
        return int(cell["value"])
    if cell_type == "float":
        return float(cell["value"])
    return cell.get("value")


class LibSQLVectorBackend(RemoteVectorBackend):
    """Remote vector store on a libSQL database with a native vector column."""

    name = "libsql"

    def __init__(
        self,
        url: str = None,
        auth_token: Optional[str] = None,
        dimension: int = 768,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = None
    ):
        """
        Initialize the libSQL backend.

        Args:
            url: Database URL (libsql:// URLs are served over https)
            auth_token: Bearer token for the database
            dimension: Embedding dimension of the vector column
            client: Existing httpx client (tests inject a MockTransport)
            timeout: HTTP timeout in seconds
        """
        url = url or settings.libsql_url
        if not url:
            raise ValueError("libSQL URL is not configured")
        if url.startswith("libsql://"):
            url = "https://" + url[len("libsql://"):]
        self.base_url = url.rstrip("/")
        self.auth_token = auth_token if auth_token is not None else settings.libsql_auth_token
        self.dimension = dimension

        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        self.client = client or httpx.AsyncClient(
            headers=headers,
            timeout=timeout or settings.remote_search_timeout_seconds
        )
        if client is not None:
            self.client.headers.update(headers)

    async def _execute(self, sql: str, args: List[Any] = None) -> Dict[str, Any]:
        """Run one statement and return its result set."""
        body = {
            "requests": [
                {"type": "execute", "stmt": {"sql": sql, "args": [_arg(a) for a in args or []]}},
                {"type": "close"}
            ]
        }

        try:
            response = await self.client.post(f"{self.base_url}/v2/pipeline", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteBackendError(
                f"libSQL request failed with status {e.response.status_code}"
            ) from e

        payload = response.json()
        results = payload.get("results") or []
        if not results:
            raise RemoteBackendError("libSQL returned an empty pipeline response")

        first = results[0]
        if first.get("type") != "ok":
            message = (first.get("error") or {}).get("message", "unknown error")
            raise RemoteBackendError(f"libSQL statement failed: {message}")

        return first["response"]["result"]

    @staticmethod
    def _rows(result: Dict[str, Any]) -> List[Dict[str, Any]]:
        columns = [col.get("name") for col in result.get("cols", [])]
        return [
            {name: _value(cell) for name, cell in zip(columns, row)}
            for row in result.get("rows", [])
        ]

    async def ensure_schema(self) -> None:
        """Create the passages table and its assistant index if missing."""
        await self._execute(
            "CREATE TABLE IF NOT EXISTS rag_chunks ("
            "id TEXT PRIMARY KEY, "
            "assistant_id TEXT NOT NULL, "
            "file_name TEXT NOT NULL, "
            "content TEXT NOT NULL, "
            f"embedding F32_BLOB({self.dimension}), "
            "created_at INTEGER NOT NULL)"
        )
        await self._execute(
            "CREATE INDEX IF NOT EXISTS idx_rag_chunks_assistant ON rag_chunks (assistant_id)"
        )

    async def search(
        self,
        assistant_id: str,
        query_vector: Sequence[float],
        top_k: int
    ) -> List[RemoteHit]:
        result = await self._execute(
            SEARCH_SQL, [vector_to_string(query_vector), assistant_id, int(top_k)]
        )
        return [
            RemoteHit(
                text=row["content"],
                source_id=row["file_name"],
                similarity=float(row["similarity"]) if row["similarity"] is not None else 0.0
            )
            for row in self._rows(result)
        ]

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True
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
        await self._execute(
            UPSERT_SQL,
            [
                chunk_id,
                assistant_id,
                source_id,
                text,
                vector_to_string(vector),
                int(time.time() * 1000)
            ]
        )
        return chunk_id

    async def count(self, assistant_id: str) -> int:
        result = await self._execute(
            "SELECT COUNT(*) AS count FROM rag_chunks WHERE assistant_id = ?", [assistant_id]
        )
        rows = self._rows(result)
        return int(rows[0]["count"]) if rows else 0

    async def delete_assistant(self, assistant_id: str) -> None:
        await self._execute("DELETE FROM rag_chunks WHERE assistant_id = ?", [assistant_id])
        trace_logger.info(
            "Deleted assistant passages from vector store",
            backend=self.name,
            assistant_id=assistant_id
        )

    async def aclose(self) -> None:
        await self.client.aclose()
