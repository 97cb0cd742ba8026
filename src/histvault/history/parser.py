"""
History Parser Module

Turns zsh extended-history files into command records:
- Header/continuation line parsing
- Multi-line command reassembly (heredocs, quoted newlines)
- Same-second timestamp disambiguation

Header lines look like::

    : 1704384000:5;git status

Everything up to the next header belongs to the same command.
"""

import os
import re
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..models import CommandRecord

logger = logging.getLogger(__name__)

HEADER_PATTERN = re.compile(r'^: (\d+):(\d+);(.*)$')

# Offset added per repeated second; 1000 commands in one second per file
# is the most that fit before the fraction reaches the next second.
SUBSECOND_STEP = 0.001


@dataclass
class RawEntry:
    """One command as written in the file, before disambiguation."""
    seconds: int
    duration: int
    text: str


@dataclass
class FileParseResult:
    """Outcome of parsing one history file."""
    origin: str
    records: List[CommandRecord] = field(default_factory=list)
    dropped_lines: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def _emit(entries: List[RawEntry], seconds: int, duration: int, lines: List[str]) -> None:
    text = "\n".join(lines).strip()
    if text:
        entries.append(RawEntry(seconds=seconds, duration=duration, text=text))


def parse_history_lines(lines: Iterable[str]) -> Tuple[List[RawEntry], int]:
    """
    Parse history lines into raw entries.

    Args:
        lines: Lines of one history file, with or without line terminators

    Returns:
        Tuple of (entries in file order, number of dropped lines)
    """
    entries: List[RawEntry] = []
    dropped = 0

    current_lines: Optional[List[str]] = None
    current_seconds = 0
    current_duration = 0

    for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        match = HEADER_PATTERN.match(line)
        if match:
            if current_lines is not None:
                _emit(entries, current_seconds, current_duration, current_lines)

            current_seconds = int(match.group(1))
            current_duration = int(match.group(2))
            current_lines = [match.group(3)]
        elif current_lines is not None:
            current_lines.append(line)
        elif line.strip():
            # Text before the first header has nothing to attach to
            dropped += 1

    if current_lines is not None:
        _emit(entries, current_seconds, current_duration, current_lines)

    if dropped:
        logger.debug(f"Dropped {dropped} line(s) outside any command")

    return entries, dropped


def parse_history_text(text: str) -> List[RawEntry]:
    """
    Parse the full text of one history file.

    Non-header lines continue the open command; without an open command
    they are dropped. Never raises on malformed content.

    Args:
        text: File content

    Returns:
        Raw entries in file order
    """
    entries, _ = parse_history_lines(text.split("\n"))
    return entries


def disambiguate(entries: Iterable[RawEntry], origin: str) -> List[CommandRecord]:
    """
    Assign each entry a unique timestamp within its file.

    The k-th command (zero based) seen for a given second gets
    ``seconds + k * 0.001``, so same-second commands keep their file order
    and re-parsing an unchanged file yields the same keys.

    Args:
        entries: Raw entries in file order
        origin: Absolute path of the source file

    Returns:
        CommandRecord objects ready for insertion
    """
    seen: Dict[int, int] = defaultdict(int)
    records = []

    for entry in entries:
        index = seen[entry.seconds]
        seen[entry.seconds] = index + 1

        if index == 1000:
            logger.warning(
                f"{origin}: more than 1000 commands at second {entry.seconds}, "
                "offsets now overlap the next second"
            )

        records.append(CommandRecord(
            origin=origin,
            timestamp=entry.seconds + index * SUBSECOND_STEP,
            text=entry.text,
            duration=entry.duration,
        ))

    return records


def parse_history_file(path: Union[str, Path]) -> FileParseResult:
    """
    Read, parse and disambiguate one history file.

    I/O problems are returned in ``FileParseResult.error`` so callers can
    continue with the remaining files.

    Args:
        path: History file path (``~`` is expanded)

    Returns:
        FileParseResult with records in file order
    """
    origin = os.path.abspath(os.path.expanduser(str(path)))

    try:
        # zsh writes metafied bytes for non-ASCII input; keep going on them
        with open(origin, 'r', encoding='utf-8', errors="replace", newline="\n") as f:
            entries, dropped = parse_history_lines(f)
    except OSError as e:
        logger.warning(f"Cannot read history file {origin}: {e}")
        return FileParseResult(origin=origin, error=str(e))

    records = disambiguate(entries, origin)
    logger.debug(f"Parsed {len(records)} command(s) from {origin}")

    return FileParseResult(origin=origin, records=records, dropped_lines=dropped)


def find_history_files(paths: Iterable[Union[str, Path]], suffix: str = "zsh_history") -> Tuple[List[str], List[str]]:
    """
    Expand paths into history files.

    Files are taken as given; directories are walked recursively for files
    whose name ends with ``suffix``.

    Args:
        paths: Files and/or directories
        suffix: Filename suffix that marks a history file inside directories

    Returns:
        Tuple of (history file paths, paths that do not exist)
    """
    files: List[str] = []
    missing: List[str] = []

    for raw_path in paths:
        path = Path(raw_path).expanduser()

        if path.is_dir():
            for root, dirs, names in os.walk(path):
                dirs.sort()
                for name in sorted(names):
                    if name.endswith(suffix):
                        files.append(str(Path(root) / name))
        elif path.exists():
            files.append(str(path))
        else:
            logger.warning(f"History path not found: {path}")
            missing.append(str(path))

    return files, missing
