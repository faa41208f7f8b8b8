"""Storage: remote vector backends, local passages and cache persistence."""

from memory.local_store import LocalPassageStore
from memory.vector_backend import RemoteVectorBackend, RemoteHit, ChromaVectorBackend
from memory.cache_store import CacheStore, SQLCacheStore, CacheStorageStats
from memory.libsql_backend import LibSQLVectorBackend

__all__ = [
    "LocalPassageStore", "RemoteVectorBackend", "RemoteHit", "ChromaVectorBackend",
    "CacheStore", "SQLCacheStore", "CacheStorageStats", "LibSQLVectorBackend"
]
