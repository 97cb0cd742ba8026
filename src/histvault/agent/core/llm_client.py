"""
LLM Client for the Command Wizard

Provides a swappable generation backend:
- LLMClient: LangChain chat models (any OpenAI-compatible endpoint such as a
  local Ollama server, or Google Gemini)
- CannedBackend: fixed responses for tests and offline use

Backends never raise for generation problems. Timeouts, unreachable
endpoints and empty output come back as GenerationResult(success=False).
"""

import os
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List

from dotenv import load_dotenv
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from ...config_loader import config

logger = logging.getLogger(__name__)

load_dotenv()

OPENING_FENCES = ("```bash", "```shell", "```sh", "```")
CONTINUATION_SUFFIXES = ("\\", "&&", "|")
PROMPT_PREFIXES = ("$ ", "# ")


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    GOOGLE = "google"


@dataclass
class GenerationResult:
    """Outcome of one generation call."""
    success: bool
    text: str = ""
    error: Optional[str] = None
    latency_ms: int = 0


def clean_command_response(response: str) -> str:
    """
    Reduce raw model output to a bare shell command.

    Strips code fences, keeps only the first line unless that line
    continues onto the next (ends with a backslash, && or |), and drops a
    leading shell prompt.

    Args:
        response: Raw model output

    Returns:
        Command text, possibly empty
    """
    response = response.strip()

    for fence in OPENING_FENCES:
        if response.startswith(fence):
            response = response[len(fence):]
            break
    if response.endswith("```"):
        response = response[:-3]
    response = response.strip()

    lines = response.split("\n")
    if len(lines) > 1:
        first_line = lines[0].strip()
        if not first_line.endswith(CONTINUATION_SUFFIXES):
            response = first_line

    for prefix in PROMPT_PREFIXES:
        if response.startswith(prefix):
            response = response[len(prefix):]
            break

    return response


class GenerationBackend(ABC):
    """Text generation service used by the wizard."""

    @abstractmethod
    def generate(self, prompt: str, system: str, timeout: Optional[float] = None) -> GenerationResult:
        """
        Generate a completion.

        Args:
            prompt: User prompt
            system: System instructions
            timeout: Seconds before the call is abandoned

        Returns:
            GenerationResult; failures are values, not exceptions
        """


class LLMClient(GenerationBackend):
    """
    LangChain-backed generation client.

    Features:
    - Multi-provider support (OpenAI-compatible, Gemini)
    - Per-call timeout, no retries
    - Configuration from settings.yaml
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize LLM client.

        Args:
            provider: LLM provider ('openai', 'google'). Defaults to config.
            model: Model name. Defaults to config.
            base_url: OpenAI-compatible endpoint. Defaults to config.
            temperature: Sampling temperature (0-1). Defaults to config.
            max_tokens: Max output tokens. Defaults to config.
            timeout: Default per-call timeout in seconds. Defaults to config.
        """
        self.provider = provider or config.get('agent.llm.provider', 'openai')
        self.model = model or config.get('agent.llm.model', 'qwen2.5-coder:3b')
        self.base_url = base_url or config.get('agent.llm.base_url', 'http://localhost:11434/v1')
        self.temperature = temperature if temperature is not None else config.get('agent.llm.temperature', 0.3)
        self.max_tokens = max_tokens or config.get('agent.llm.max_tokens', 100)
        self.timeout = timeout or config.get('agent.llm.timeout', 5)

        # Local servers accept any key; hosted providers need the real one
        api_key_env = config.get('agent.llm.api_key_env', 'HISTVAULT_LLM_API_KEY')
        self.api_key = os.getenv(api_key_env) or config.get('agent.llm.default_api_key', 'ollama')

        if self.provider not in (LLMProvider.OPENAI, LLMProvider.GOOGLE):
            raise ValueError(f"Unsupported provider: {self.provider}")

        self._llm = None
        self._llm_timeout = None

        logger.info(
            f"LLM Client initialized: {self.provider}/{self.model} "
            f"(temp={self.temperature}, max_tokens={self.max_tokens}, timeout={self.timeout}s)"
        )

    def _get_llm(self, timeout: float) -> BaseChatModel:
        """Create the chat model lazily; rebuilt when the timeout changes."""
        if self._llm is None or self._llm_timeout != timeout:
            self._llm = self._create_llm(timeout)
            self._llm_timeout = timeout
        return self._llm

    def _create_llm(self, timeout: float) -> BaseChatModel:
        if self.provider == LLMProvider.GOOGLE:
            return self._create_google_llm(timeout)
        return self._create_openai_llm(timeout)

    def _create_openai_llm(self, timeout: float) -> BaseChatModel:
        """Create an OpenAI-compatible chat model (Ollama, vLLM, OpenAI)."""
        # Import here to avoid dependency if not using OpenAI
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=self.model,
            base_url=self.base_url,
            api_key=self.api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=timeout,
            max_retries=0,
        )

    def _create_google_llm(self, timeout: float) -> BaseChatModel:
        """Create Google Gemini LLM instance."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=self.model,
            google_api_key=self.api_key,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            timeout=timeout,
            max_retries=0,
        )

    @staticmethod
    def _content_text(content) -> str:
        """Flatten message content (string or list of parts) to text."""
        if isinstance(content, str):
            return content
        parts: List[str] = []
        for part in content or []:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)

    def generate(self, prompt: str, system: str, timeout: Optional[float] = None) -> GenerationResult:
        timeout = timeout or self.timeout
        messages = [SystemMessage(content=system), HumanMessage(content=prompt)]
        start = time.monotonic()

        try:
            response = self._get_llm(timeout).invoke(messages)
        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"LLM generation failed after {latency_ms}ms: {e}")
            return GenerationResult(success=False, error=f"LLM generation failed: {e}", latency_ms=latency_ms)

        latency_ms = int((time.monotonic() - start) * 1000)
        text = self._content_text(response.content).strip()

        if not text:
            return GenerationResult(success=False, error="LLM returned an empty response", latency_ms=latency_ms)

        logger.debug(f"LLM response in {latency_ms}ms: {text[:100]}")
        return GenerationResult(success=True, text=text, latency_ms=latency_ms)

    def __repr__(self) -> str:
        return f"LLMClient(provider={self.provider}, model={self.model}, timeout={self.timeout})"


class CannedBackend(GenerationBackend):
    """
    Backend returning fixed responses, in order, repeating the last one.

    Pass ``error`` to simulate a failing endpoint instead.
    """

    def __init__(self, responses: Optional[List[str]] = None, error: Optional[str] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[dict] = []

    def generate(self, prompt: str, system: str, timeout: Optional[float] = None) -> GenerationResult:
        self.calls.append({"prompt": prompt, "system": system, "timeout": timeout})

        if self.error:
            return GenerationResult(success=False, error=self.error)
        if not self.responses:
            return GenerationResult(success=False, error="no canned response available")

        text = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if not text.strip():
            return GenerationResult(success=False, error="LLM returned an empty response")
        return GenerationResult(success=True, text=text)
