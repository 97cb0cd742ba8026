"""
Database Service

Handles all SQLite operations for the command history store with WAL mode
and scoped engine lifetime.

The store is an explicit object: open it with a path, use it as a context
manager, and pass it to whatever needs it. Nothing here is global.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import SQLModel, Session, select, create_engine, text, func, col

from ..config_loader import config
from ..exceptions import StoreError
from ..models import CommandRecord, CacheEntry  # noqa: F401  (CacheEntry registers its table)
from .query_builder import SearchFilter, QueryBuilder, FTS_TABLE_NAME

logger = logging.getLogger(__name__)


# External-content FTS5 index over commands.text. The triggers run inside
# the writing transaction, so a committed row is always indexed.
TEXT_INDEX_DDL = [
    f"""CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE_NAME} USING fts5(
        text,
        content='commands',
        content_rowid='rowid'
    )""",
    f"""CREATE TRIGGER IF NOT EXISTS commands_ai AFTER INSERT ON commands BEGIN
        INSERT INTO {FTS_TABLE_NAME}(rowid, text) VALUES (new.rowid, new.text);
    END""",
    f"""CREATE TRIGGER IF NOT EXISTS commands_ad AFTER DELETE ON commands BEGIN
        INSERT INTO {FTS_TABLE_NAME}({FTS_TABLE_NAME}, rowid, text) VALUES ('delete', old.rowid, old.text);
    END""",
    f"""CREATE TRIGGER IF NOT EXISTS commands_au AFTER UPDATE ON commands BEGIN
        INSERT INTO {FTS_TABLE_NAME}({FTS_TABLE_NAME}, rowid, text) VALUES ('delete', old.rowid, old.text);
        INSERT INTO {FTS_TABLE_NAME}(rowid, text) VALUES (new.rowid, new.text);
    END""",
]


@dataclass
class StoreStats:
    """Record counts for the whole store."""
    total_records: int = 0
    distinct_origins: int = 0
    per_origin_counts: Dict[str, int] = field(default_factory=dict)


class HistoryStore:
    """
    SQLite command history store.

    Owns the engine for its lifetime; always close it (or use ``with``)
    so the handle is released on every exit path.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        batch_size: Optional[int] = None,
        echo_sql: Optional[bool] = None
    ):
        """
        Open (and create if needed) the history database.

        Args:
            db_path: SQLite file path. Defaults to ``database.path`` from config.
            batch_size: Records per insert transaction. Defaults to config (500).
            echo_sql: Log every SQL statement. Defaults to config.

        Raises:
            StoreError: If the database cannot be opened or its schema created
        """
        self.db_path = Path(db_path).expanduser() if db_path else config.get_path('database.path')
        self.batch_size = batch_size or config.get('database.batch_size', 500)
        self.fts_enabled = False

        if echo_sql is None:
            echo_sql = config.get('database.echo_sql', False)

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create database directory {self.db_path.parent}: {e}", operation="open") from e

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=echo_sql,
            connect_args={
                "timeout": config.get('database.busy_timeout', 30)  # wait for a concurrent collector
            }
        )

        logger.debug(f"Database engine initialized: {self.db_path}")

        try:
            self._create_tables()
            self._enable_wal_mode()
            self._create_text_index()
        except StoreError:
            self.engine.dispose()
            raise

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def __enter__(self) -> 'HistoryStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release all pooled connections."""
        self.engine.dispose()
        logger.debug(f"Database closed: {self.db_path}")

    # ============================================================
    # SCHEMA
    # ============================================================

    def _create_tables(self) -> None:
        """
        Create all database tables if they don't exist.
        """
        try:
            SQLModel.metadata.create_all(self.engine)
            logger.debug("Database tables created/verified")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}", exc_info=True)
            raise StoreError(f"Failed to create tables in {self.db_path}: {e}", operation="open") from e

    def _enable_wal_mode(self) -> None:
        """
        Enable Write-Ahead Logging mode.

        Lets searches read while a background collector writes.
        """
        try:
            with self.engine.connect() as connection:
                connection.execute(text("PRAGMA journal_mode=WAL;"))
                connection.execute(text("PRAGMA synchronous=NORMAL;"))
                connection.commit()

            logger.debug("WAL mode enabled")
        except SQLAlchemyError as e:
            logger.warning(f"Failed to enable WAL mode (non-fatal): {e}")

    def _create_text_index(self) -> None:
        """
        Create the FTS5 index and its sync triggers.

        An index created over existing rows is rebuilt at once. SQLite
        builds without FTS5 fall back to substring matching.
        """
        try:
            with self.engine.begin() as connection:
                existed = connection.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
                    {"name": FTS_TABLE_NAME}
                ).first() is not None

                for statement in TEXT_INDEX_DDL:
                    connection.execute(text(statement))

                if not existed:
                    count = connection.execute(text("SELECT COUNT(*) FROM commands")).scalar()
                    if count:
                        logger.info(f"Indexing {count} existing command(s)")
                        connection.execute(text(f"INSERT INTO {FTS_TABLE_NAME}({FTS_TABLE_NAME}) VALUES('rebuild')"))

            self.fts_enabled = True
        except OperationalError as e:
            if "fts5" not in str(e).lower():
                raise StoreError(f"Failed to create text index: {e}", operation="open") from e
            logger.warning("SQLite has no FTS5 support; free-text search uses substring matching")
            self.fts_enabled = False

    def rebuild_text_index(self) -> bool:
        """
        Rebuild the full-text index from the commands table.

        Returns:
            True if rebuilt, False if FTS5 is unavailable
        """
        if not self.fts_enabled:
            logger.warning("Text index rebuild skipped: FTS5 unavailable")
            return False

        try:
            with self.engine.begin() as connection:
                connection.execute(text(f"INSERT INTO {FTS_TABLE_NAME}({FTS_TABLE_NAME}) VALUES('rebuild')"))
                connection.execute(text(f"INSERT INTO {FTS_TABLE_NAME}({FTS_TABLE_NAME}) VALUES('optimize')"))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to rebuild text index: {e}", operation="rebuild_text_index") from e

        logger.info("Text index rebuilt")
        return True

    # ============================================================
    # WRITE OPERATIONS
    # ============================================================

    def insert_batch(
        self,
        records: Iterable[CommandRecord],
        batch_size: Optional[int] = None
    ) -> Tuple[int, int]:
        """
        Insert records, skipping keys that already exist.

        Input is split into sub-batches, each committed in its own
        transaction. A failing sub-batch is rolled back completely.

        Args:
            records: CommandRecord objects
            batch_size: Override records per transaction

        Returns:
            Tuple of (inserted, skipped)

        Raises:
            StoreError: On the first failing sub-batch, carrying the counts
                committed before it
        """
        records = list(records)
        if not records:
            return 0, 0

        size = batch_size or self.batch_size
        if size <= 0:
            size = 500

        total_inserted = 0
        total_skipped = 0

        for start in range(0, len(records), size):
            chunk = records[start:start + size]
            try:
                inserted = self._insert_chunk(chunk)
            except SQLAlchemyError as e:
                logger.error(f"Insert failed for records {start}-{start + len(chunk) - 1}: {e}")
                raise StoreError(
                    f"Failed to insert records {start}-{start + len(chunk) - 1}: {e}",
                    operation="insert_batch",
                    inserted=total_inserted,
                    skipped=total_skipped
                ) from e

            total_inserted += inserted
            total_skipped += len(chunk) - inserted

        logger.debug(f"insert_batch: {total_inserted} inserted, {total_skipped} skipped")
        return total_inserted, total_skipped

    def _insert_chunk(self, chunk: List[CommandRecord]) -> int:
        statement = sqlite_insert(CommandRecord).on_conflict_do_nothing(
            index_elements=["origin", "timestamp"]
        )

        inserted = 0
        with self.engine.begin() as connection:
            for record in chunk:
                result = connection.execute(statement, {
                    "origin": record.origin,
                    "timestamp": record.timestamp,
                    "text": record.text,
                    "duration": record.duration,
                    "cwd": record.cwd,
                    "exit_code": record.exit_code,
                })
                inserted += result.rowcount

        return inserted

    # ============================================================
    # QUERY OPERATIONS
    # ============================================================

    def query(self, search_filter: Optional[SearchFilter] = None) -> List[CommandRecord]:
        """
        Run a filtered search.

        Args:
            search_filter: Text, time bounds and limit (defaults: no filter, 500 rows)

        Returns:
            Matching records, best text match first, then most recent first
        """
        search_filter = search_filter or SearchFilter()
        statement = QueryBuilder.from_filter(search_filter, fts_enabled=self.fts_enabled).build()
        return self._fetch_records(statement, "query")

    def recent(self, limit: int = 50) -> List[CommandRecord]:
        """Most recent commands across all origins."""
        statement = (
            select(CommandRecord)
            .order_by(col(CommandRecord.timestamp).desc())
            .limit(max(limit, 1))
        )
        return self._fetch_records(statement, "recent")

    def search_prefix(self, prefix: str, limit: int = 10) -> List[CommandRecord]:
        """Most recent commands starting with ``prefix``."""
        statement = (
            select(CommandRecord)
            .where(col(CommandRecord.text).startswith(prefix, autoescape=True))
            .order_by(col(CommandRecord.timestamp).desc())
            .limit(max(limit, 1))
        )
        return self._fetch_records(statement, "search_prefix")

    def frequent(self, pattern: Optional[str] = None, limit: int = 10) -> List[Tuple[str, int]]:
        """
        Most frequently run commands.

        Args:
            pattern: Optional substring the command must contain
            limit: Maximum rows

        Returns:
            List of (command text, run count), most used first
        """
        uses = func.count().label("uses")
        statement = select(CommandRecord.text, uses).group_by(CommandRecord.text)
        if pattern:
            statement = statement.where(col(CommandRecord.text).contains(pattern, autoescape=True))
        statement = statement.order_by(uses.desc()).limit(max(limit, 1))

        try:
            with Session(self.engine) as session:
                return [(row[0], row[1]) for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get frequent commands: {e}", operation="frequent") from e

    def find_related(self, keywords: Iterable[str], limit: int = 10) -> List[str]:
        """
        Commands containing the given keywords, for generation context.

        All keywords must match; if that finds nothing and there is more
        than one keyword, any keyword may match. Keywords of two characters
        or fewer are ignored.

        Args:
            keywords: Lowercase keywords
            limit: Maximum commands

        Returns:
            Distinct command texts, most used first, then most recent
        """
        filtered = [k.strip() for k in keywords if len(k.strip()) > 2]
        if not filtered or limit <= 0:
            return []

        conditions = [col(CommandRecord.text).contains(k, autoescape=True) for k in filtered]

        results = self._related(and_(*conditions), limit)
        if not results and len(filtered) > 1:
            logger.debug(f"No command matches all of {filtered}; widening to any")
            results = self._related(or_(*conditions), limit)

        return results

    def _related(self, condition, limit: int) -> List[str]:
        uses = func.count().label("uses")
        last_seen = func.max(CommandRecord.timestamp).label("last_seen")
        statement = (
            select(CommandRecord.text, uses, last_seen)
            .where(condition)
            .group_by(CommandRecord.text)
            .order_by(uses.desc(), last_seen.desc())
            .limit(limit)
        )

        try:
            with Session(self.engine) as session:
                return [row[0] for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to search related commands: {e}", operation="find_related") from e

    def stats(self) -> StoreStats:
        """
        Get record counts.

        Returns:
            StoreStats with per-origin counts, largest first
        """
        count = func.count().label("count")
        try:
            with Session(self.engine) as session:
                total = session.exec(select(func.count()).select_from(CommandRecord)).one()
                rows = session.exec(
                    select(CommandRecord.origin, count)
                    .group_by(CommandRecord.origin)
                    .order_by(count.desc(), CommandRecord.origin)
                ).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get store stats: {e}", operation="stats") from e

        per_origin = {origin: origin_count for origin, origin_count in rows}
        return StoreStats(
            total_records=total,
            distinct_origins=len(per_origin),
            per_origin_counts=per_origin
        )

    def _fetch_records(self, statement, operation: str) -> List[CommandRecord]:
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}")
            raise StoreError(f"Failed to {operation.replace('_', ' ')}: {e}", operation=operation) from e
