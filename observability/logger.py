"""
Structured logging with trace IDs for observability.
Model loading, retrieval, cache decisions, reranking and errors are logged.
"""

import logging
import json
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, List
from pathlib import Path
from contextlib import contextmanager
from pythonjsonlogger.json import JsonFormatter

from config import settings


_current_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


class TraceLogger:
    """Structured logger with trace ID support for retrieval observability."""

    def __init__(self, name: str = "rag_core"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, settings.log_level))

        if not self.logger.handlers:
            if settings.enable_trace_logging:
                # Ensure log directory exists
                log_file_path = Path(settings.log_file)
                log_file_path.parent.mkdir(parents=True, exist_ok=True)

                # File handler with JSON formatting
                file_handler = logging.FileHandler(settings.log_file)
                json_formatter = JsonFormatter(
                    fmt='%(asctime)s %(name)s %(levelname)s %(message)s',
                    rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
                )
                file_handler.setFormatter(json_formatter)
                self.logger.addHandler(file_handler)

            # Console handler with readable formatting
            console_handler = logging.StreamHandler()
            console_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

    def generate_trace_id(self) -> str:
        """Generate a new trace ID."""
        return str(uuid.uuid4())

    @property
    def current_trace_id(self) -> Optional[str]:
        return _current_trace_id.get()

    @contextmanager
    def trace(self, trace_id: Optional[str] = None):
        """Context manager for trace ID.

        Backed by a context variable, so each asyncio task keeps its own ID.
        """
        token = _current_trace_id.set(trace_id or self.generate_trace_id())
        try:
            yield _current_trace_id.get()
        finally:
            _current_trace_id.reset(token)

    def _log(self, level: str, event: str, **kwargs):
        """Internal log method with trace ID."""
        log_data = {
            "trace_id": _current_trace_id.get() or "unknown",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            **kwargs
        }

        log_method = getattr(self.logger, level.lower())
        # "message" is reserved on LogRecord
        extra = {k: v for k, v in log_data.items() if k != "message"}
        log_method(json.dumps(log_data, default=str), extra=extra)

    def model_load_progress(
        self,
        model_name: str,
        stage: str,
        progress: float,
        **kwargs
    ):
        """Log a model loading milestone."""
        self._log(
            "info",
            "model_load_progress",
            model_name=model_name,
            stage=stage,
            progress=progress,
            **kwargs
        )

    def model_loaded(
        self,
        model_name: str,
        device: str,
        duration_ms: float,
        **kwargs
    ):
        """Log a completed model load."""
        self._log(
            "info",
            "model_loaded",
            model_name=model_name,
            device=device,
            duration_ms=duration_ms,
            **kwargs
        )

    def retrieval_performed(
        self,
        assistant_id: str,
        source: str,
        sources: List[Dict[str, Any]],
        top_k: int,
        **kwargs
    ):
        """Log vector retrieval."""
        self._log(
            "info",
            "retrieval_performed",
            assistant_id=assistant_id,
            source=source,
            num_sources=len(sources),
            top_k=top_k,
            sources=[
                {
                    "source_id": s.get("source_id"),
                    "score": s.get("relevance_score")
                }
                for s in sources
            ],
            **kwargs
        )

    def rerank_performed(
        self,
        num_candidates: int,
        num_results: int,
        duration_ms: float,
        **kwargs
    ):
        """Log a cross-encoder rerank pass."""
        self._log(
            "info",
            "rerank_performed",
            num_candidates=num_candidates,
            num_results=num_results,
            duration_ms=duration_ms,
            **kwargs
        )

    def cache_hit(
        self,
        assistant_id: str,
        similarity: float,
        query: str,
        original_query: str,
        **kwargs
    ):
        """Log semantic cache hit."""
        self._log(
            "info",
            "cache_hit",
            assistant_id=assistant_id,
            similarity=similarity,
            query_preview=query[:100],
            original_query_preview=original_query[:100],
            **kwargs
        )

    def cache_miss(
        self,
        assistant_id: str,
        best_similarity: float,
        **kwargs
    ):
        """Log semantic cache miss."""
        self._log(
            "debug",
            "cache_miss",
            assistant_id=assistant_id,
            best_similarity=best_similarity,
            **kwargs
        )

    def cache_stored(
        self,
        assistant_id: str,
        entry_id: str,
        num_results: int,
        **kwargs
    ):
        """Log a new cache entry."""
        self._log(
            "info",
            "cache_stored",
            assistant_id=assistant_id,
            entry_id=entry_id,
            num_results=num_results,
            **kwargs
        )

    def cache_evicted(
        self,
        assistant_id: str,
        reason: str,
        entry_ids: List[str],
        **kwargs
    ):
        """Log cache evictions."""
        self._log(
            "info",
            "cache_evicted",
            assistant_id=assistant_id,
            reason=reason,
            num_evicted=len(entry_ids),
            entry_ids=entry_ids,
            **kwargs
        )

    def cache_maintenance(
        self,
        removed_count: int,
        remaining_entries: int,
        **kwargs
    ):
        """Log a maintenance sweep."""
        self._log(
            "info",
            "cache_maintenance",
            removed_count=removed_count,
            remaining_entries=remaining_entries,
            **kwargs
        )

    def pipeline_stage(
        self,
        stage: str,
        assistant_id: str,
        **kwargs
    ):
        """Log a pipeline state transition."""
        self._log(
            "debug",
            "pipeline_stage",
            stage=stage,
            assistant_id=assistant_id,
            **kwargs
        )

    def query_completed(
        self,
        assistant_id: str,
        from_cache: bool,
        source: str,
        num_results: int,
        duration_ms: float,
        **kwargs
    ):
        """Log pipeline completion."""
        self._log(
            "info",
            "query_completed",
            assistant_id=assistant_id,
            from_cache=from_cache,
            source=source,
            num_results=num_results,
            duration_ms=duration_ms,
            **kwargs
        )

    def error_occurred(
        self,
        error_type: str,
        error_message: str,
        context: Optional[Dict] = None,
        **kwargs
    ):
        """Log error."""
        self._log(
            "error",
            "error_occurred",
            error_type=error_type,
            error_message=error_message,
            context=context or {},
            **kwargs
        )

    def debug(self, message: str, **kwargs):
        """Debug level log."""
        self._log("debug", "debug", message=message, **kwargs)

    def info(self, message: str, **kwargs):
        """Info level log."""
        self._log("info", "info", message=message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Warning level log."""
        self._log("warning", "warning", message=message, **kwargs)

    def error(self, message: str, **kwargs):
        """Error level log."""
        self._log("error", "error", message=message, **kwargs)


# Global logger instance
trace_logger = TraceLogger()
