"""
Query Service

Read-only search layer used by the CLI and the fuzzy finder.
Turns user-facing arguments (free text, date strings, limits) into a
SearchFilter and returns the store's results unchanged.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from .database import HistoryStore
from .query_builder import SearchFilter, DEFAULT_LIMIT
from ..models import CommandRecord

logger = logging.getLogger(__name__)

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

TimeBound = Union[str, datetime, float, int, None]


def parse_time_bound(value: TimeBound) -> Optional[float]:
    """
    Convert a time bound to unix seconds.

    Accepts ``YYYY-MM-DD HH:MM:SS`` or ``YYYY-MM-DD`` (start of that day),
    both in local time, a naive-local or aware datetime, or a number.

    Args:
        value: Bound to convert; None or "" means no bound

    Returns:
        Unix timestamp, or None

    Raises:
        ValueError: If a string matches neither format
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)

    value = value.strip()
    if not value:
        return None

    for fmt in (DATETIME_FORMAT, DATE_FORMAT):
        try:
            return datetime.strptime(value, fmt).timestamp()
        except ValueError:
            continue

    raise ValueError(f"invalid date format: {value} (use YYYY-MM-DD or YYYY-MM-DD HH:MM:SS)")


def format_timestamp(timestamp: float) -> str:
    """Render a record timestamp as local ``YYYY-MM-DD HH:MM:SS``."""
    return datetime.fromtimestamp(int(timestamp)).strftime(DATETIME_FORMAT)


class QueryService:
    """
    Search front end over a HistoryStore.
    """

    def __init__(self, store: HistoryStore, default_limit: int = DEFAULT_LIMIT):
        """
        Args:
            store: Open HistoryStore (not owned; the caller closes it)
            default_limit: Limit used when search() gets none
        """
        self.store = store
        self.default_limit = default_limit

    def build_filter(
        self,
        query: Optional[str] = None,
        since: TimeBound = None,
        until: TimeBound = None,
        limit: Optional[int] = None
    ) -> SearchFilter:
        """
        Build a SearchFilter from user-facing arguments.

        Raises:
            ValueError: On an unparseable date or an inverted range
        """
        return SearchFilter(
            query=query,
            since=parse_time_bound(since),
            until=parse_time_bound(until),
            limit=limit if limit and limit > 0 else self.default_limit
        )

    def search(
        self,
        query: Optional[str] = None,
        since: TimeBound = None,
        until: TimeBound = None,
        limit: Optional[int] = None
    ) -> List[CommandRecord]:
        """
        Search command history.

        Args:
            query: Free text; each term is a prefix and all must match
            since: Inclusive lower bound (date, date-time, datetime or unix seconds)
            until: Inclusive upper bound (same forms)
            limit: Maximum results (default 500)

        Returns:
            Records ranked by text relevance, then most recent first
        """
        search_filter = self.build_filter(query=query, since=since, until=until, limit=limit)
        results = self.store.query(search_filter)

        logger.debug(
            f"search(query={search_filter.query!r}, since={search_filter.since}, "
            f"until={search_filter.until}, limit={search_filter.limit}) -> {len(results)} result(s)"
        )
        return results
