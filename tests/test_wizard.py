"""
Command Wizard Tests

Cache-first generation, history context, prompt shape and failure
reporting. The generation backend is a CannedBackend or a MagicMock.
"""

from unittest.mock import MagicMock

import pytest

from histvault.agent.core.command_cache import CommandCache
from histvault.agent.core.llm_client import CannedBackend, GenerationBackend
from histvault.agent.core.schemas import WizardRequest, WizardStatus
from histvault.agent.core.wizard import CommandWizard, build_user_prompt, SYSTEM_PROMPT
from histvault.exceptions import StoreError
from histvault.models import CommandRecord


@pytest.fixture
def cache(store):
    return CommandCache(store)


def _wizard(store, cache, backend):
    return CommandWizard(store, cache, backend, timeout=5, max_context=10)


# ============================================================
# PIPELINE
# ============================================================

def test_cache_hit_skips_backend(store, cache):
    cache.record("show disk usage", "df -h")
    backend = MagicMock(spec=GenerationBackend)

    result = _wizard(store, cache, backend).generate(WizardRequest(query="  Show Disk Usage "))

    assert result.success
    assert result.status == WizardStatus.CACHE_HIT
    assert result.command == "df -h"
    assert result.source == "cache"
    assert result.from_cache is True
    backend.generate.assert_not_called()


def test_generated_command_is_cleaned(store, cache):
    backend = CannedBackend(["```bash\nls -la\n```"])

    result = _wizard(store, cache, backend).generate(WizardRequest(query="list all files including hidden"))

    assert result.success
    assert result.status == WizardStatus.GENERATED
    assert result.command == "ls -la"
    assert result.source == "llm"
    assert result.from_cache is False
    assert backend.calls[0]["system"] == SYSTEM_PROMPT
    assert backend.calls[0]["timeout"] == 5


def test_generation_does_not_populate_cache(store, cache):
    _wizard(store, cache, CannedBackend(["df -h"])).generate(WizardRequest(query="disk usage"))

    assert cache.lookup("disk usage") is None


def test_confirm_then_cache_hit(store, cache):
    backend = CannedBackend(["du -sh ."])
    wizard = _wizard(store, cache, backend)

    first = wizard.generate(WizardRequest(query="folder size"))
    wizard.confirm("folder size", first.command)
    second = wizard.generate(WizardRequest(query="Folder Size"))

    assert second.status == WizardStatus.CACHE_HIT
    assert second.command == "du -sh ."
    assert len(backend.calls) == 1


@pytest.mark.parametrize("query", ["", "   "])
def test_empty_query_is_invalid(query):
    store = MagicMock()
    cache = MagicMock()
    backend = MagicMock(spec=GenerationBackend)

    result = CommandWizard(store, cache, backend).generate(WizardRequest(query=query))

    assert not result.success
    assert result.status == WizardStatus.INVALID_QUERY
    assert result.source is None
    cache.lookup.assert_not_called()
    store.find_related.assert_not_called()
    backend.generate.assert_not_called()


def test_backend_failure_is_distinct_from_miss(store, cache):
    backend = CannedBackend(error="LLM generation failed: Request timed out.")

    result = _wizard(store, cache, backend).generate(WizardRequest(query="show disk usage"))

    assert not result.success
    assert result.status == WizardStatus.GENERATION_FAILED
    assert "timed out" in result.error
    assert result.command is None
    assert len(backend.calls) == 1


def test_unusable_output_is_failure(store, cache):
    result = _wizard(store, cache, CannedBackend(["```\n```"])).generate(WizardRequest(query="anything"))

    assert result.status == WizardStatus.GENERATION_FAILED
    assert result.error == "LLM returned empty or invalid command"


def test_no_backend_and_no_cache(store, cache):
    result = CommandWizard(store, cache, backend=None).generate(WizardRequest(query="disk usage"))

    assert result.status == WizardStatus.GENERATION_FAILED


def test_cache_store_error_falls_through_to_generation(store):
    cache = MagicMock()
    cache.lookup.side_effect = StoreError("database is locked", operation="cache_lookup")

    result = _wizard(store, cache, CannedBackend(["df -h"])).generate(WizardRequest(query="disk usage"))

    assert result.status == WizardStatus.GENERATED


# ============================================================
# CONTEXT AND PROMPT
# ============================================================

def test_history_context_reaches_prompt(store, cache):
    store.insert_batch([
        CommandRecord(origin="/h", timestamp=1.0, text="docker ps -a"),
        CommandRecord(origin="/h", timestamp=2.0, text="docker ps -a"),
        CommandRecord(origin="/h", timestamp=3.0, text="git status"),
    ])
    backend = CannedBackend(["docker ps"])

    _wizard(store, cache, backend).generate(WizardRequest(query="show all docker containers", cwd="/srv"))

    prompt = backend.calls[0]["prompt"]
    assert "- docker ps -a\n" in prompt
    assert "git status" not in prompt
    assert "\nCurrent directory: /srv\n" in prompt


def test_build_user_prompt_layout():
    prompt = build_user_prompt("count lines", cwd="/tmp", history=["wc -l a.py", "x" * 120])

    assert prompt.startswith("Convert this request to a shell command:\ncount lines\n")
    assert "\nCurrent directory: /tmp\n" in prompt
    assert "\nRelevant commands from user's history (for context/patterns):\n- wc -l a.py\n" in prompt
    assert f"- {'x' * 100}...\n" in prompt
    assert prompt.endswith("\nShell command:")


def test_build_user_prompt_minimal():
    assert build_user_prompt("df") == "Convert this request to a shell command:\ndf\n\nShell command:"


def test_result_json_fields(store, cache):
    result = _wizard(store, cache, CannedBackend(["df -h"])).generate(WizardRequest(query="disk"))

    output = result.to_output()

    assert set(output) == {"command", "source", "query", "latency_ms", "from_cache"}
    assert output["command"] == "df -h"
    assert output["source"] == "llm"


def test_request_blank_cwd_is_none():
    request = WizardRequest(query=" df ", cwd="   ")

    assert request.query == "df"
    assert request.cwd is None
    assert set(WizardRequest.model_fields) == {"query", "cwd"}
