"""
Pydantic Schemas for the Command Wizard

Request and result types exchanged between the CLI and CommandWizard.
An empty query is accepted here and rejected by the wizard, so that the
rejection comes back as a WizardResult like every other outcome.
"""

from typing import Optional, Literal, Dict, Any
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# ============================================================
# ENUMS
# ============================================================

class WizardStatus(str, Enum):
    """Outcome of a wizard call."""
    CACHE_HIT = "cache_hit"
    GENERATED = "generated"
    INVALID_QUERY = "invalid_query"
    GENERATION_FAILED = "generation_failed"


# ============================================================
# REQUEST
# ============================================================

class WizardRequest(BaseModel):
    """Natural-language request for a shell command."""

    query: str = Field(
        default="",
        description="What the user wants to do, in plain words",
        examples=["show disk usage", "find large files over 100MB"]
    )

    cwd: Optional[str] = Field(
        default=None,
        description="Working directory the command will run in"
    )

    @field_validator('query', mode='before')
    @classmethod
    def strip_query(cls, v):
        return (v or "").strip()

    @field_validator('cwd', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


# ============================================================
# RESULT
# ============================================================

class WizardResult(BaseModel):
    """Result of CommandWizard.generate()."""

    success: bool
    status: WizardStatus
    query: str
    command: Optional[str] = None
    source: Optional[Literal["cache", "llm"]] = None
    latency_ms: int = 0
    from_cache: bool = False
    error: Optional[str] = None

    def to_output(self) -> Dict[str, Any]:
        """Fields printed by ``histvault wizard --json``."""
        return {
            "command": self.command,
            "source": self.source,
            "query": self.query,
            "latency_ms": self.latency_ms,
            "from_cache": self.from_cache,
        }
