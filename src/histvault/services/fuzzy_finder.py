"""
Fuzzy Finder Adapter

Wraps the external fzf process for interactive history selection.

Candidates are written NUL-delimited so multi-line commands stay one
record:  command<TAB>origin<TAB>YYYY-MM-DD HH:MM:SS
"""

import logging
import shutil
import subprocess
from typing import Iterable, List, Optional

from ..config_loader import config
from ..exceptions import FuzzyFinderError
from ..models import CommandRecord
from .query_service import format_timestamp

logger = logging.getLogger(__name__)

# fzf exit codes that mean "nothing chosen"
NO_MATCH = 1
INTERRUPTED = 130

PREVIEW_COMMAND = (
    """sh -c 'printf "Source: %s\\nTime:   %s\\n\\nCommand:\\n%s\\n" "$2" "$3" "$1"' _ {1} {2} {3}"""
)


def format_candidate(record: CommandRecord) -> str:
    """Render one record as a tab-separated fzf line."""
    return f"{record.text}\t{record.origin}\t{format_timestamp(record.timestamp)}"


def extract_command(selection: str) -> str:
    """Recover the command field from a selected line (commands may contain tabs)."""
    parts = selection.rsplit("\t", 2)
    return parts[0] if len(parts) == 3 else selection


class FuzzyFinder:
    """
    Interactive selector backed by fzf.

    The UI runs on the terminal; only the candidates go through stdin and
    only the selection comes back on stdout.
    """

    def __init__(self, binary: Optional[str] = None, preview_width: Optional[str] = None):
        """
        Args:
            binary: fzf executable name or path. Defaults to config.
            preview_width: Preview pane width (e.g., "40%"). Defaults to config.
        """
        self.binary = binary or config.get('search.fzf_binary', 'fzf')
        self.preview_width = preview_width or config.get('search.fzf_preview_width', '40%')

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def build_command(self) -> List[str]:
        return [
            self.binary,
            "--read0",
            "--print0",
            "--delimiter=\t",
            "--with-nth=1",  # show only the command
            "--preview", PREVIEW_COMMAND,
            f"--preview-window=right:{self.preview_width}:wrap",
        ]

    def select(self, records: Iterable[CommandRecord]) -> Optional[str]:
        """
        Let the user pick one command.

        Args:
            records: Candidates in display order

        Returns:
            The selected command text, or None if cancelled or nothing to pick

        Raises:
            FuzzyFinderError: If fzf is missing or exits with an error
        """
        candidates = [format_candidate(record) for record in records]
        if not candidates:
            return None

        if not self.is_available():
            raise FuzzyFinderError(f"{self.binary} not found in PATH, please install it first")

        payload = "".join(f"{line}\0" for line in candidates).encode("utf-8")
        cmd = self.build_command()

        logger.debug(f"Starting {self.binary} with {len(candidates)} candidate(s)")

        try:
            result = subprocess.run(cmd, input=payload, stdout=subprocess.PIPE)
        except OSError as e:
            raise FuzzyFinderError(f"Failed to start {self.binary}: {e}") from e

        if result.returncode in (NO_MATCH, INTERRUPTED):
            logger.debug("Selection cancelled")
            return None
        if result.returncode != 0:
            raise FuzzyFinderError(
                f"{self.binary} failed with exit code {result.returncode}",
                returncode=result.returncode
            )

        selected = result.stdout.decode("utf-8", errors="replace").rstrip("\0").strip()
        if not selected:
            return None

        return extract_command(selected)
