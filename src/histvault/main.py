"""
histvault Collection Pipeline

Coordinates history ingestion:
1. Expand paths (directories are walked for *zsh_history files)
2. Parse and disambiguate each file
3. Insert into the store (idempotent)
4. Summarize per-file outcomes and store totals

Unreadable or missing files are recorded and skipped. A store failure
stops the run: later files are not attempted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .config_loader import config
from .exceptions import StoreError
from .history.parser import parse_history_file, find_history_files
from .services.database import HistoryStore, StoreStats

logger = logging.getLogger(__name__)


class FileStatus(str, Enum):
    """Outcome of one history file."""
    INGESTED = "ingested"
    MISSING = "missing"
    UNREADABLE = "unreadable"
    STORE_FAILED = "store_failed"


@dataclass
class FileOutcome:
    """What happened to one history file."""
    path: str
    status: FileStatus
    parsed: int = 0
    inserted: int = 0
    skipped: int = 0
    dropped_lines: int = 0
    error: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"FileOutcome(path={self.path}, status={self.status.value}, "
            f"parsed={self.parsed}, new={self.inserted}, skipped={self.skipped})"
        )


@dataclass
class CollectionSummary:
    """Result of one collection run."""
    outcomes: List[FileOutcome] = field(default_factory=list)
    stats: Optional[StoreStats] = None
    store_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.store_error is None

    @property
    def total_parsed(self) -> int:
        return sum(o.parsed for o in self.outcomes)

    @property
    def total_inserted(self) -> int:
        return sum(o.inserted for o in self.outcomes)

    @property
    def total_skipped(self) -> int:
        return sum(o.skipped for o in self.outcomes)

    def files_with(self, status: FileStatus) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "files_ingested": len(self.files_with(FileStatus.INGESTED)),
            "files_missing": len(self.files_with(FileStatus.MISSING)),
            "files_unreadable": len(self.files_with(FileStatus.UNREADABLE)),
            "commands_parsed": self.total_parsed,
            "commands_new": self.total_inserted,
            "commands_skipped": self.total_skipped,
            "total_records": self.stats.total_records if self.stats else None,
            "store_error": self.store_error,
        }


class CollectionPipeline:
    """
    History collection orchestrator.

    The store is passed in and not closed here; the caller owns it.
    """

    def __init__(self, store: HistoryStore, file_suffix: Optional[str] = None):
        """
        Args:
            store: Open HistoryStore to ingest into
            file_suffix: Suffix of history files inside directories. Defaults to config.
        """
        self.store = store
        self.file_suffix = file_suffix or config.get('collection.file_suffix', 'zsh_history')

    def default_paths(self) -> List[str]:
        return [str(Path(p).expanduser()) for p in config.get('collection.paths', ['~/.histories'])]

    def run(self, paths: Optional[Iterable[Union[str, Path]]] = None) -> CollectionSummary:
        """
        Ingest history files.

        Args:
            paths: Files and/or directories. Defaults to ``collection.paths``.

        Returns:
            CollectionSummary with one outcome per file
        """
        paths = list(paths) if paths else self.default_paths()
        summary = CollectionSummary()

        logger.info("=" * 60)
        logger.info(f"Collecting history from {len(paths)} path(s)")
        logger.info("=" * 60)

        files, missing = find_history_files(paths, suffix=self.file_suffix)

        for path in missing:
            summary.outcomes.append(FileOutcome(
                path=path,
                status=FileStatus.MISSING,
                error="path does not exist"
            ))

        if not files:
            logger.warning(f"No history files found in: {', '.join(str(p) for p in paths)}")

        for path in files:
            outcome = self._collect_file(path)
            summary.outcomes.append(outcome)

            if outcome.status == FileStatus.STORE_FAILED:
                summary.store_error = outcome.error
                logger.error(f"Collection stopped: {outcome.error}")
                return summary

        try:
            summary.stats = self.store.stats()
        except StoreError as e:
            summary.store_error = str(e)
            logger.error(f"Failed to read store stats: {e}")
            return summary

        logger.info(
            f"Collection complete: {summary.total_parsed} parsed, "
            f"{summary.total_inserted} new, {summary.total_skipped} skipped"
        )
        return summary

    def _collect_file(self, path: str) -> FileOutcome:
        """Parse one file and insert its records."""
        result = parse_history_file(path)

        if not result.success:
            return FileOutcome(path=result.origin, status=FileStatus.UNREADABLE, error=result.error)

        parsed = len(result.records)

        try:
            inserted, skipped = self.store.insert_batch(result.records)
        except StoreError as e:
            return FileOutcome(
                path=result.origin,
                status=FileStatus.STORE_FAILED,
                parsed=parsed,
                inserted=e.inserted,
                skipped=e.skipped,
                dropped_lines=result.dropped_lines,
                error=str(e)
            )

        logger.info(f"{result.origin}: {parsed} parsed, {inserted} new, {skipped} skipped")

        return FileOutcome(
            path=result.origin,
            status=FileStatus.INGESTED,
            parsed=parsed,
            inserted=inserted,
            skipped=skipped,
            dropped_lines=result.dropped_lines
        )


def main(paths: Optional[List[str]] = None, db_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Collect history into the store.

    Args:
        paths: Files and/or directories. Defaults to ``collection.paths``.
        db_path: Database file. Defaults to ``database.path``.

    Returns:
        Execution summary dict
    """
    with HistoryStore(db_path) as store:
        return CollectionPipeline(store).run(paths).to_dict()


if __name__ == "__main__":
    import sys

    from .logging_config import setup_logging
    setup_logging()

    summary = main(sys.argv[1:] or None)

    sys.exit(0 if summary.get("success") else 1)
