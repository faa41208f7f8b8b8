"""
Persistence for the semantic cache.
The cache keeps its working set in memory and writes through to a CacheStore.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import settings
from models.cache import Base, CacheEntry, QueryCacheRecord, ensure_utc
from models.errors import CacheStoreError
from observability import trace_logger


@dataclass
class CacheStorageStats:
    """Aggregate view of stored cache entries."""
    total_entries: int = 0
    entries_by_assistant: Dict[str, int] = field(default_factory=dict)
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "entries_by_assistant": dict(self.entries_by_assistant),
            "oldest_entry": self.oldest_entry.isoformat() if self.oldest_entry else None,
            "newest_entry": self.newest_entry.isoformat() if self.newest_entry else None
        }


class CacheStore(ABC):
    """Abstract cache persistence. Methods are blocking; callers run them in a thread."""

    @abstractmethod
    def load_assistant(self, assistant_id: str) -> List[CacheEntry]:
        pass

    @abstractmethod
    def save(self, entry: CacheEntry) -> None:
        pass

    @abstractmethod
    def update_access(self, entry_id: str, last_accessed_at: datetime, hit_count: int) -> None:
        pass

    @abstractmethod
    def delete(self, entry_ids: List[str]) -> int:
        pass

    @abstractmethod
    def delete_assistant(self, assistant_id: str) -> int:
        pass

    @abstractmethod
    def delete_expired(self, cutoff: datetime) -> List[str]:
        """Delete entries last accessed before cutoff. Returns their ids."""
        pass

    @abstractmethod
    def stats(self) -> CacheStorageStats:
        pass


class SQLCacheStore(CacheStore):
    """SQLAlchemy-backed cache store."""

    def __init__(self, database_url: str = None):
        """Initialize the store and create its table."""
        self.database_url = database_url or settings.cache_database_url

        engine_kwargs = {}
        if self.database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
            elif self.database_url.startswith("sqlite:///"):
                Path(self.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(self.database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Session:
        """Get database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            trace_logger.error_occurred(
                error_type="cache_database_error",
                error_message=str(e)
            )
            raise CacheStoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def load_assistant(self, assistant_id: str) -> List[CacheEntry]:
        with self.get_session() as session:
            records = (
                session.query(QueryCacheRecord)
                .filter(QueryCacheRecord.assistant_id == assistant_id)
                .order_by(QueryCacheRecord.last_accessed_at.asc())
                .all()
            )
            entries = []
            for record in records:
                try:
                    entries.append(record.to_entry())
                except (KeyError, TypeError, ValueError) as e:
                    trace_logger.warning(
                        "Skipping unreadable cache entry",
                        entry_id=record.id,
                        error=f"{type(e).__name__}: {e}"
                    )
            return entries

    def save(self, entry: CacheEntry) -> None:
        with self.get_session() as session:
            session.merge(QueryCacheRecord.from_entry(entry))

    def update_access(self, entry_id: str, last_accessed_at: datetime, hit_count: int) -> None:
        with self.get_session() as session:
            session.query(QueryCacheRecord).filter(QueryCacheRecord.id == entry_id).update(
                {"last_accessed_at": last_accessed_at, "hit_count": hit_count},
                synchronize_session=False
            )

    def delete(self, entry_ids: List[str]) -> int:
        if not entry_ids:
            return 0
        with self.get_session() as session:
            return (
                session.query(QueryCacheRecord)
                .filter(QueryCacheRecord.id.in_(entry_ids))
                .delete(synchronize_session=False)
            )

    def delete_assistant(self, assistant_id: str) -> int:
        with self.get_session() as session:
            return (
                session.query(QueryCacheRecord)
                .filter(QueryCacheRecord.assistant_id == assistant_id)
                .delete(synchronize_session=False)
            )

    def delete_expired(self, cutoff: datetime) -> List[str]:
        with self.get_session() as session:
            expired = [
                row.id for row in session.query(QueryCacheRecord.id)
                .filter(QueryCacheRecord.last_accessed_at < cutoff)
                .all()
            ]
            if expired:
                session.query(QueryCacheRecord).filter(
                    QueryCacheRecord.id.in_(expired)
                ).delete(synchronize_session=False)
            return expired

    def stats(self) -> CacheStorageStats:
        with self.get_session() as session:
            counts = (
                session.query(QueryCacheRecord.assistant_id, func.count(QueryCacheRecord.id))
                .group_by(QueryCacheRecord.assistant_id)
                .all()
            )
            oldest, newest = session.query(
                func.min(QueryCacheRecord.created_at),
                func.max(QueryCacheRecord.created_at)
            ).one()

        by_assistant = {assistant_id: count for assistant_id, count in counts}
        return CacheStorageStats(
            total_entries=sum(by_assistant.values()),
            entries_by_assistant=by_assistant,
            oldest_entry=ensure_utc(oldest) if oldest else None,
            newest_entry=ensure_utc(newest) if newest else None
        )
