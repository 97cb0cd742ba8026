"""
Command Wizard

Turns a natural-language request into one shell command.

Pipeline:
1. Validate the query (empty -> INVALID_QUERY, nothing else touched)
2. Cache lookup (hit -> returned as is, the backend is not called)
3. Keywords -> related commands from history as context
4. Prompt -> generation backend -> response cleaning

Nothing is cached here. A command enters the cache only through
confirm(), once the user has accepted and run it.
"""

import logging
import time
from typing import List, Optional

from .command_cache import CommandCache
from .llm_client import GenerationBackend, clean_command_response
from .schemas import WizardRequest, WizardResult, WizardStatus
from ..retrieval.keywords import extract_keywords
from ...config_loader import config
from ...exceptions import StoreError
from ...models import CacheEntry
from ...services.database import HistoryStore

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a shell command generator. Convert natural language requests into executable shell commands.

RULES:
- Output ONLY the shell command, nothing else
- No explanations, no markdown, no code blocks
- Use common Unix/Linux commands
- Prefer simple, readable commands
- If multiple commands needed, chain with && or use subshells
- Use appropriate flags for human-readable output where applicable
- If the request is ambiguous, make reasonable assumptions

EXAMPLES:
User: "list all files including hidden"
Output: ls -la

User: "find large files over 100MB"
Output: find . -type f -size +100M

User: "show disk usage"
Output: df -h

User: "count lines in all python files"
Output: find . -name "*.py" -exec wc -l {} +"""


def build_user_prompt(
    query: str,
    cwd: Optional[str] = None,
    history: Optional[List[str]] = None,
    max_command_chars: int = 100
) -> str:
    """
    Build the generation prompt for one request.

    Args:
        query: Validated request text
        cwd: Optional working directory
        history: Related commands from the user's history
        max_command_chars: Longer history commands are truncated with "..."

    Returns:
        Prompt ending with "Shell command:"
    """
    parts = ["Convert this request to a shell command:\n", query, "\n"]

    if cwd:
        parts.append(f"\nCurrent directory: {cwd}\n")

    if history:
        parts.append("\nRelevant commands from user's history (for context/patterns):\n")
        for command in history:
            if len(command) > max_command_chars:
                command = command[:max_command_chars] + "..."
            parts.append(f"- {command}\n")

    parts.append("\nShell command:")
    return "".join(parts)


class CommandWizard:
    """
    Natural-language to shell command generator with a confirm-to-cache loop.
    """

    def __init__(
        self,
        store: HistoryStore,
        cache: CommandCache,
        backend: Optional[GenerationBackend],
        timeout: Optional[float] = None,
        max_context: Optional[int] = None
    ):
        """
        Args:
            store: History store used for context retrieval
            cache: Query -> command cache
            backend: Generation backend; None means cache-only
            timeout: Per-call generation timeout in seconds. Defaults to config.
            max_context: History commands included in the prompt. Defaults to config.
        """
        self.store = store
        self.cache = cache
        self.backend = backend
        self.timeout = timeout or config.get('agent.llm.timeout', 5)
        self.max_context = max_context or config.get('agent.context.max_commands', 10)
        self.max_command_chars = config.get('agent.context.max_command_chars', 100)

    def generate(self, request: WizardRequest) -> WizardResult:
        """
        Produce a command for a request.

        Args:
            request: WizardRequest with the query and optional cwd

        Returns:
            WizardResult; failures are reported through status and error
        """
        start = time.monotonic()
        query = request.query

        if not query:
            return WizardResult(
                success=False,
                status=WizardStatus.INVALID_QUERY,
                query=query,
                error="query cannot be empty"
            )

        cached = self._lookup_cache(query)
        if cached is not None:
            logger.info(f"Wizard cache hit for {query!r}")
            return WizardResult(
                success=True,
                status=WizardStatus.CACHE_HIT,
                query=query,
                command=cached.command,
                source="cache",
                from_cache=True,
                latency_ms=self._elapsed_ms(start)
            )

        if self.backend is None:
            return WizardResult(
                success=False,
                status=WizardStatus.GENERATION_FAILED,
                query=query,
                error="LLM not available and no cached result",
                latency_ms=self._elapsed_ms(start)
            )

        history = self.gather_history_context(query)
        prompt = build_user_prompt(query, request.cwd, history, self.max_command_chars)

        logger.debug(f"Generating command for {query!r} with {len(history)} history command(s)")
        generation = self.backend.generate(prompt, SYSTEM_PROMPT, timeout=self.timeout)

        if not generation.success:
            return WizardResult(
                success=False,
                status=WizardStatus.GENERATION_FAILED,
                query=query,
                error=generation.error or "LLM generation failed",
                latency_ms=self._elapsed_ms(start)
            )

        command = clean_command_response(generation.text)
        if not command:
            return WizardResult(
                success=False,
                status=WizardStatus.GENERATION_FAILED,
                query=query,
                error="LLM returned empty or invalid command",
                latency_ms=self._elapsed_ms(start)
            )

        logger.info(f"Generated command for {query!r}: {command}")
        return WizardResult(
            success=True,
            status=WizardStatus.GENERATED,
            query=query,
            command=command,
            source="llm",
            latency_ms=self._elapsed_ms(start)
        )

    def confirm(self, query: str, command: str) -> CacheEntry:
        """
        Record a command the user accepted, so the next identical query is
        answered from the cache.

        Raises:
            ValueError: If query or command is empty
        """
        return self.cache.record(query, command)

    def gather_history_context(self, query: str) -> List[str]:
        """Related history commands for the prompt; empty if none or on store errors."""
        keywords = extract_keywords(query)
        if not keywords:
            return []

        try:
            return self.store.find_related(keywords, limit=self.max_context)
        except StoreError as e:
            logger.warning(f"History context unavailable: {e}")
            return []

    def _lookup_cache(self, query: str) -> Optional[CacheEntry]:
        try:
            return self.cache.lookup(query)
        except StoreError as e:
            logger.warning(f"Cache lookup failed, generating instead: {e}")
            return None

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
