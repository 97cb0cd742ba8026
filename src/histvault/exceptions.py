"""
Exception hierarchy for histvault.

Only conditions that must reach the top-level caller are exceptions:
- Store transaction failures
- Missing or broken configuration
- A fuzzy finder that cannot be started

Per-line parse anomalies, unreadable history files and generation failures
are reported as result objects instead (see FileParseResult, FileOutcome,
GenerationResult and WizardResult).
"""

from typing import Optional


class HistVaultError(Exception):
    """Base exception for all histvault errors."""

    pass


class ConfigurationError(HistVaultError):
    """Raised when a settings file is missing or cannot be parsed."""

    pass


class StoreError(HistVaultError):
    """
    Raised when a store transaction fails.

    Carries the operation name and, for bulk inserts, the counts that were
    already committed by earlier sub-batches.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        inserted: int = 0,
        skipped: int = 0
    ):
        super().__init__(message)
        self.operation = operation
        self.inserted = inserted
        self.skipped = skipped


class FuzzyFinderError(HistVaultError):
    """Raised when the external fuzzy finder is missing or crashes."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode
