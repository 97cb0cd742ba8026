"""
histvault Data Models

SQLModel definitions for database persistence.
Uses SQLite with WAL mode; the full-text index over commands.text is a
FTS5 virtual table created alongside these tables (see services.database).
"""

from typing import Optional

from sqlmodel import SQLModel, Field


# ============================================================
# HISTORY
# ============================================================

class CommandRecord(SQLModel, table=True):
    """
    One executed shell command from one history file.

    (origin, timestamp) is the primary key and the only dedup mechanism:
    re-ingesting a file regenerates identical keys.
    """
    __tablename__ = "commands"

    origin: str = Field(primary_key=True)  # absolute path of the history file
    timestamp: float = Field(primary_key=True, index=True)  # unix seconds + same-second offset
    text: str
    duration: Optional[int] = None
    cwd: Optional[str] = None
    exit_code: Optional[int] = None

    @property
    def seconds(self) -> int:
        """Wall-clock second the command ran."""
        return int(self.timestamp)


# ============================================================
# WIZARD CACHE
# ============================================================

class CacheEntry(SQLModel, table=True):
    """
    Natural-language query mapped to the last command confirmed for it.
    """
    __tablename__ = "wizard_cache"

    normalized_query: str = Field(primary_key=True)
    original_query: str
    command: str
    run_count: int = Field(default=1)
    last_used: float = Field(index=True)
    created_at: float
