"""
FastAPI application for the RAG retrieval service.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import router
from config import settings
from jobs.scheduler import CacheMaintenanceScheduler
from memory.local_store import LocalPassageStore
from observability import trace_logger
from rag.factory import build_orchestrator
from rag.pipeline import RagQueryOrchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown."""
    # Startup
    trace_logger.info("Starting RAG retrieval API")

    if app.state.local_store is None:
        app.state.local_store = LocalPassageStore()
    if app.state.orchestrator is None:
        app.state.orchestrator = build_orchestrator(local_store=app.state.local_store)

    orchestrator = app.state.orchestrator
    if settings.preload_models:
        await orchestrator.embedding_engine.preload()
        if orchestrator.reranker is not None and settings.rag_enable_reranking:
            await orchestrator.reranker.preload()

    scheduler = None
    if settings.cache_auto_maintenance and orchestrator.cache is not None:
        scheduler = CacheMaintenanceScheduler(orchestrator)
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.stop()
    trace_logger.info("Shutting down RAG retrieval API")


def create_app(
    orchestrator: Optional[RagQueryOrchestrator] = None,
    local_store: Optional[LocalPassageStore] = None
) -> FastAPI:
    """Build the application. Services are created at startup unless given."""
    app = FastAPI(
        title="RAG Retrieval Core",
        description="Embedding, vector retrieval, reranking and semantic caching for assistant knowledge bases",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.orchestrator = orchestrator
    app.state.local_store = local_store

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routes
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "RAG Retrieval Core",
            "version": "1.0.0",
            "status": "operational"
        }

    return app


app = create_app()
