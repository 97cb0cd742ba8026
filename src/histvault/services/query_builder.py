"""
Query Builder

Composes typed search predicates into a single parameterized SQLAlchemy
statement over the commands table:
- TextMatch: prefix match on every term, ranked by FTS5 bm25
- TimeLowerBound / TimeUpperBound: inclusive timestamp bounds
- ResultLimit: maximum number of rows

All predicates are AND-ed. User text only ever reaches SQL as bound
parameters.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import column, func, literal_column, table
from sqlmodel import col, select

from ..models import CommandRecord

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 500

FTS_TABLE_NAME = "commands_fts"
FTS_TABLE = table(FTS_TABLE_NAME, column("rowid"), column("text"))


# ============================================================
# FILTER SCHEMA
# ============================================================

class SearchFilter(BaseModel):
    """Search parameters accepted by HistoryStore.query."""

    query: Optional[str] = Field(
        default=None,
        description="Free text; every whitespace-separated term must prefix-match",
        examples=["git", "docker comp"]
    )

    since: Optional[float] = Field(
        default=None,
        description="Inclusive lower bound, unix seconds",
        ge=0
    )

    until: Optional[float] = Field(
        default=None,
        description="Inclusive upper bound, unix seconds",
        ge=0
    )

    limit: int = Field(
        default=DEFAULT_LIMIT,
        description="Maximum number of records to return",
        ge=1
    )

    @field_validator('query')
    @classmethod
    def blank_query_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @field_validator('until')
    @classmethod
    def validate_time_range(cls, v, info):
        """Ensure until >= since if both provided."""
        if v is not None and info.data.get('since') is not None:
            if v < info.data['since']:
                raise ValueError("until must be >= since")
        return v


# ============================================================
# PREDICATES
# ============================================================

def search_terms(query: str) -> List[str]:
    """Split a query into terms, dropping terms without letters or digits."""
    return [term for term in query.split() if any(ch.isalnum() for ch in term)]


def build_match_expression(query: str) -> Optional[str]:
    """
    Build an FTS5 MATCH expression where each term is a quoted prefix.

    ``git com`` becomes ``"git"* "com"*`` (implicit AND in FTS5).
    """
    terms = ['"' + term.replace('"', '""') + '"*' for term in search_terms(query)]
    if not terms:
        return None
    return " ".join(terms)


class Predicate(ABC):
    """Base class for one search condition."""

    @abstractmethod
    def apply(self, statement, fts_enabled: bool = True):
        """Return ``statement`` with this condition applied."""
        pass


@dataclass
class TextMatch(Predicate):
    query: str

    def apply(self, statement, fts_enabled: bool = True):
        if fts_enabled:
            match = build_match_expression(self.query)
            if match is None:
                return statement

            fts = literal_column(FTS_TABLE_NAME)
            return (
                statement
                .join(FTS_TABLE, FTS_TABLE.c.rowid == literal_column("commands.rowid"))
                .where(fts.op("MATCH")(match))
                .order_by(func.bm25(fts))
            )

        # No FTS5 in this SQLite build: substring match on every term
        for term in search_terms(self.query):
            statement = statement.where(col(CommandRecord.text).contains(term, autoescape=True))
        return statement


@dataclass
class TimeLowerBound(Predicate):
    value: float

    def apply(self, statement, fts_enabled: bool = True):
        return statement.where(col(CommandRecord.timestamp) >= self.value)


@dataclass
class TimeUpperBound(Predicate):
    value: float

    def apply(self, statement, fts_enabled: bool = True):
        return statement.where(col(CommandRecord.timestamp) <= self.value)


@dataclass
class ResultLimit(Predicate):
    limit: int = DEFAULT_LIMIT

    def apply(self, statement, fts_enabled: bool = True):
        return statement.limit(self.limit)


# ============================================================
# BUILDER
# ============================================================

class QueryBuilder:
    """
    Collects predicates and renders them into one SELECT.

    Text relevance (when present) orders first, then most recent first.
    """

    def __init__(self, fts_enabled: bool = True):
        self.fts_enabled = fts_enabled
        self.predicates: List[Predicate] = []

    @classmethod
    def from_filter(cls, search_filter: SearchFilter, fts_enabled: bool = True) -> 'QueryBuilder':
        builder = cls(fts_enabled=fts_enabled)

        if search_filter.query:
            builder.add(TextMatch(search_filter.query))
        if search_filter.since is not None:
            builder.add(TimeLowerBound(search_filter.since))
        if search_filter.until is not None:
            builder.add(TimeUpperBound(search_filter.until))
        builder.add(ResultLimit(search_filter.limit))

        return builder

    def add(self, predicate: Predicate) -> 'QueryBuilder':
        self.predicates.append(predicate)
        return self

    def build(self):
        statement = select(CommandRecord)
        limits = []

        for predicate in self.predicates:
            if isinstance(predicate, ResultLimit):
                limits.append(predicate)
                continue
            statement = predicate.apply(statement, self.fts_enabled)

        statement = statement.order_by(col(CommandRecord.timestamp).desc())

        # Tightest limit wins when more than one was added
        if limits:
            statement = min(limits, key=lambda p: p.limit).apply(statement, self.fts_enabled)

        logger.debug(f"Built search statement with {len(self.predicates)} predicate(s)")
        return statement
