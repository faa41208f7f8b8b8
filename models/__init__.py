"""Data models and schemas."""

from models.passage import Passage, RetrievalResult
from models.cache import Base, CacheEntry, QueryCacheRecord
from models.schemas import (
    PassageIn, PassageOut, RagQueryRequest, RagQueryResponseModel,
    LocalPassagesRequest, LocalPassagesResponse, CacheConfigUpdate,
    CacheConfigResponse, CacheStatsResponse, MaintenanceResponse,
    ClearCacheResponse, HealthResponse
)

__all__ = [
    "Passage", "RetrievalResult", "Base", "CacheEntry", "QueryCacheRecord",
    "PassageIn", "PassageOut", "RagQueryRequest", "RagQueryResponseModel",
    "LocalPassagesRequest", "LocalPassagesResponse", "CacheConfigUpdate",
    "CacheConfigResponse", "CacheStatsResponse", "MaintenanceResponse",
    "ClearCacheResponse", "HealthResponse"
]
