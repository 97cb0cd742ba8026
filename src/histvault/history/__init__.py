"""
History - zsh extended-history parsing

Turns raw history files into disambiguated CommandRecord objects.
Independent of the store: nothing here touches the database.
"""

from .parser import (
    RawEntry,
    FileParseResult,
    parse_history_text,
    parse_history_file,
    disambiguate,
    find_history_files,
)

__all__ = [
    "RawEntry",
    "FileParseResult",
    "parse_history_text",
    "parse_history_file",
    "disambiguate",
    "find_history_files",
]
