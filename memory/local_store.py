"""
Local passage store.
In-process passages with precomputed vectors, used when the remote backend
has nothing to return.
"""

import threading
from typing import Dict, Iterable, List

from models.passage import Passage
from observability import trace_logger


class LocalPassageStore:
    """Assistant-scoped in-process passage store."""

    def __init__(self):
        self._passages: Dict[str, List[Passage]] = {}
        self._lock = threading.Lock()

    def add_passages(self, assistant_id: str, passages: Iterable[Passage]) -> int:
        """
        Append passages for an assistant.

        Args:
            assistant_id: Owning assistant
            passages: Passages, normally carrying vectors

        Returns:
            Number of passages added
        """
        new_passages = list(passages)
        with self._lock:
            self._passages.setdefault(assistant_id, []).extend(new_passages)

        missing_vectors = sum(1 for p in new_passages if p.vector is None)
        trace_logger.info(
            "Added local passages",
            assistant_id=assistant_id,
            count=len(new_passages),
            missing_vectors=missing_vectors
        )
        return len(new_passages)

    def get_passages(self, assistant_id: str) -> List[Passage]:
        """Snapshot of an assistant's passages in insertion order."""
        with self._lock:
            return list(self._passages.get(assistant_id, []))

    def clear_assistant(self, assistant_id: str) -> int:
        with self._lock:
            removed = self._passages.pop(assistant_id, [])
        return len(removed)

    def count(self, assistant_id: str) -> int:
        with self._lock:
            return len(self._passages.get(assistant_id, []))
