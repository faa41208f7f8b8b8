"""
API routes for retrieval queries and cache administration.
"""

from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException, Request

from models.schemas import (
    RagQueryRequest, RagQueryResponseModel, PassageOut,
    LocalPassagesRequest, LocalPassagesResponse,
    CacheConfigUpdate, CacheConfigResponse, CacheStatsResponse,
    MaintenanceResponse, ClearCacheResponse, HealthResponse
)
from memory.local_store import LocalPassageStore
from observability import trace_logger
from models.errors import EmbeddingError, ModelLoadError, RerankError
from rag.pipeline import RagQueryOptions, RagQueryOrchestrator


router = APIRouter()

# Errors that mean the service cannot answer at all
FATAL_ERRORS = (ModelLoadError, EmbeddingError, RerankError)


def get_orchestrator(request: Request) -> RagQueryOrchestrator:
    return request.app.state.orchestrator


def get_local_store(request: Request) -> LocalPassageStore:
    return request.app.state.local_store


def require_cache(orchestrator: RagQueryOrchestrator):
    if orchestrator.cache is None:
        raise HTTPException(status_code=404, detail="Semantic cache is disabled")
    return orchestrator.cache


@router.post("/rag/query", response_model=RagQueryResponseModel)
async def rag_query(
    request: RagQueryRequest,
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> RagQueryResponseModel:
    """
    Retrieve context for a query.

    This is the main entry point for chat completion callers.
    """
    local_passages = None
    if request.local_passages is not None:
        local_passages = [p.to_passage() for p in request.local_passages]

    try:
        result = await orchestrator.query(
            request.query,
            request.assistant_id,
            local_passages=local_passages,
            options=RagQueryOptions(**request.option_overrides())
        )
    except FATAL_ERRORS as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        trace_logger.error_occurred(
            error_type="rag_query_error",
            error_message=str(e),
            context={"assistant_id": request.assistant_id}
        )
        raise HTTPException(status_code=500, detail=str(e))

    return RagQueryResponseModel(
        context=result.context,
        passages=[PassageOut(**p.to_dict()) for p in result.passages],
        from_cache=result.from_cache,
        source=result.source,
        query_latency_ms=result.query_latency_ms,
        candidate_count=result.candidate_count,
        filtered_count=result.filtered_count,
        cache_similarity=result.cache_similarity,
        original_query=result.original_query,
        hit_count=result.hit_count,
        trace_id=result.trace_id
    )


@router.post("/rag/local/{assistant_id}/passages", response_model=LocalPassagesResponse)
async def add_local_passages(
    assistant_id: str,
    request: LocalPassagesRequest,
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator),
    local_store: LocalPassageStore = Depends(get_local_store)
) -> LocalPassagesResponse:
    """Add fallback passages; passages without a vector are embedded as documents."""
    passages = [p.to_passage() for p in request.passages]
    missing = [i for i, p in enumerate(passages) if p.vector is None]

    if missing:
        try:
            vectors = await orchestrator.embedding_engine.embed_many(
                [passages[i].text for i in missing], role="document"
            )
        except FATAL_ERRORS as e:
            raise HTTPException(status_code=503, detail=str(e))
        for i, vector in zip(missing, vectors):
            passages[i] = replace(passages[i], vector=[float(v) for v in vector])

    added = local_store.add_passages(assistant_id, passages)
    return LocalPassagesResponse(
        assistant_id=assistant_id,
        added=added,
        total=local_store.count(assistant_id)
    )


@router.get("/rag/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> CacheStatsResponse:
    """Query metrics and cache storage statistics."""
    return CacheStatsResponse(**await orchestrator.get_cache_stats())


@router.post("/rag/cache/maintenance", response_model=MaintenanceResponse)
async def cache_maintenance(
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> MaintenanceResponse:
    """Remove expired cache entries now."""
    require_cache(orchestrator)
    try:
        report = await orchestrator.perform_maintenance()
    except Exception as e:
        trace_logger.error_occurred(error_type="cache_maintenance_error", error_message=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    return MaintenanceResponse(**report.to_dict())


@router.delete("/rag/cache/{assistant_id}", response_model=ClearCacheResponse)
async def clear_cache(
    assistant_id: str,
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> ClearCacheResponse:
    """Drop every cached query of an assistant."""
    require_cache(orchestrator)
    try:
        removed = await orchestrator.clear_assistant_cache(assistant_id)
    except Exception as e:
        trace_logger.error_occurred(
            error_type="cache_clear_error",
            error_message=str(e),
            context={"assistant_id": assistant_id}
        )
        raise HTTPException(status_code=500, detail=str(e))
    return ClearCacheResponse(assistant_id=assistant_id, removed_count=removed)


@router.patch("/rag/cache/config", response_model=CacheConfigResponse)
async def update_cache_config(
    update: CacheConfigUpdate,
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> CacheConfigResponse:
    """Update cache settings. Invalid values are ignored and reported in logs."""
    cache = require_cache(orchestrator)
    config = cache.update_config(**update.model_dump(exclude_none=True))
    return CacheConfigResponse(**config.model_dump())


@router.post("/rag/metrics/reset")
async def reset_metrics(
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
):
    """Zero the query counters."""
    orchestrator.reset_metrics()
    return {"status": "reset"}


@router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: RagQueryOrchestrator = Depends(get_orchestrator)
) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version="1.0.0",
        embedding_model_loaded=orchestrator.embedding_engine.is_loaded,
        reranker_model_loaded=orchestrator.reranker is not None and orchestrator.reranker.is_loaded
    )
