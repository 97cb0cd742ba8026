"""
Command Cache

Maps natural-language queries to the last command the user confirmed for
them. Consulted before any generation call.

Keys are normalized (trimmed, lower-cased); matching is exact.
"""

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, delete, col

from ...exceptions import StoreError
from ...models import CacheEntry
from ...services.database import HistoryStore

logger = logging.getLogger(__name__)


def normalize_query(query: str) -> str:
    """Normalize a query for cache lookup (trim, lowercase)."""
    return query.strip().lower()


class CommandCache:
    """
    Query -> command cache stored in the history database.
    """

    def __init__(self, store: HistoryStore, clock: Callable[[], float] = time.time):
        """
        Args:
            store: Open HistoryStore whose database holds the cache table
            clock: Source of unix time for last_used/created_at
        """
        self.store = store
        self.engine = store.engine
        self.clock = clock

    def _require_key(self, query: str) -> str:
        normalized = normalize_query(query or "")
        if not normalized:
            raise ValueError("query cannot be empty")
        return normalized

    def lookup(self, query: str) -> Optional[CacheEntry]:
        """
        Find the cached command for a query.

        Args:
            query: Raw query text

        Returns:
            CacheEntry or None on a miss

        Raises:
            ValueError: If the query is empty
        """
        normalized = self._require_key(query)

        try:
            with Session(self.engine) as session:
                entry = session.get(CacheEntry, normalized)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read wizard cache: {e}", operation="cache_lookup") from e

        logger.debug(f"Cache {'hit' if entry else 'miss'} for {normalized!r}")
        return entry

    def record(self, query: str, command: str) -> CacheEntry:
        """
        Store a confirmed command for a query.

        A new key starts with run_count 1. An existing key gets its
        run_count incremented and its command, original query and
        last_used replaced.

        Raises:
            ValueError: If the query or command is empty
        """
        normalized = self._require_key(query)
        command = (command or "").strip()
        if not command:
            raise ValueError("command cannot be empty")

        now = self.clock()
        statement = sqlite_insert(CacheEntry).values(
            normalized_query=normalized,
            original_query=query.strip(),
            command=command,
            run_count=1,
            last_used=now,
            created_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["normalized_query"],
            set_={
                "command": statement.excluded.command,
                "original_query": statement.excluded.original_query,
                "last_used": statement.excluded.last_used,
                "run_count": col(CacheEntry.run_count) + 1,
            }
        )

        try:
            with Session(self.engine) as session:
                session.execute(statement)
                session.commit()
                entry = session.get(CacheEntry, normalized)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write wizard cache: {e}", operation="cache_record") from e

        logger.info(f"Cached command for {normalized!r} (run_count={entry.run_count})")
        return entry

    def list(self, limit: int = 50) -> List[CacheEntry]:
        """Cached entries, most recently used first."""
        statement = (
            select(CacheEntry)
            .order_by(col(CacheEntry.last_used).desc(), col(CacheEntry.created_at).desc())
            .limit(limit if limit > 0 else 50)
        )

        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list wizard cache: {e}", operation="cache_list") from e

    def clear(self) -> int:
        """
        Remove every cached entry.

        Returns:
            Number of entries removed
        """
        try:
            with Session(self.engine) as session:
                result = session.execute(delete(CacheEntry))
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to clear wizard cache: {e}", operation="cache_clear") from e

        logger.info(f"Cleared {result.rowcount} cache entries")
        return result.rowcount

    def delete(self, query: str) -> bool:
        """
        Remove the entry for one query.

        Returns:
            True if an entry was removed
        """
        normalized = self._require_key(query)

        try:
            with Session(self.engine) as session:
                result = session.execute(
                    delete(CacheEntry).where(col(CacheEntry.normalized_query) == normalized)
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete wizard cache entry: {e}", operation="cache_delete") from e

        return result.rowcount > 0
