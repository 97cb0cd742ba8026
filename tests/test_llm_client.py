"""
LLM Client Tests

Response cleaning and failure-as-value behaviour of the generation
backends. No network: the chat model is replaced with a MagicMock.
"""

import unittest
from unittest.mock import MagicMock, patch

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from histvault.agent.core.llm_client import (
    CannedBackend,
    GenerationResult,
    LLMClient,
    clean_command_response,
)


class TestCleanCommandResponse(unittest.TestCase):

    def test_plain_command(self):
        self.assertEqual(clean_command_response("  df -h \n"), "df -h")

    def test_strips_code_fence(self):
        self.assertEqual(clean_command_response("```bash\nls -la\n```"), "ls -la")
        self.assertEqual(clean_command_response("```sh\nls -la\n```"), "ls -la")
        self.assertEqual(clean_command_response("```\nls -la\n```"), "ls -la")

    def test_keeps_first_line_only(self):
        self.assertEqual(
            clean_command_response("du -sh *\nThis shows the size of each entry."),
            "du -sh *"
        )

    def test_keeps_continued_lines(self):
        text = "find . -name '*.log' |\nxargs rm"
        self.assertEqual(clean_command_response(text), text)

        chained = "make &&\nmake install"
        self.assertEqual(clean_command_response(chained), chained)

    def test_strips_prompt_prefix(self):
        self.assertEqual(clean_command_response("$ git status"), "git status")
        self.assertEqual(clean_command_response("# apt update"), "apt update")

    def test_empty(self):
        self.assertEqual(clean_command_response("```\n```"), "")


class TestLLMClient(unittest.TestCase):
    """LLMClient with the chat model mocked out."""

    def setUp(self):
        self.client = LLMClient(provider="openai", model="qwen2.5-coder:3b", timeout=5)
        self.mock_llm = MagicMock()
        self.client._get_llm = MagicMock(return_value=self.mock_llm)

    def test_success(self):
        self.mock_llm.invoke.return_value = AIMessage(content="df -h")

        result = self.client.generate("show disk usage", "system rules", timeout=2)

        self.assertTrue(result.success)
        self.assertEqual(result.text, "df -h")
        self.client._get_llm.assert_called_once_with(2)

        messages = self.mock_llm.invoke.call_args[0][0]
        self.assertIsInstance(messages[0], SystemMessage)
        self.assertIsInstance(messages[1], HumanMessage)
        self.assertEqual(messages[1].content, "show disk usage")

    def test_default_timeout(self):
        self.mock_llm.invoke.return_value = AIMessage(content="df -h")

        self.client.generate("q", "s")

        self.client._get_llm.assert_called_once_with(5)

    def test_timeout_is_failure_value(self):
        self.mock_llm.invoke.side_effect = TimeoutError("Request timed out.")

        result = self.client.generate("q", "s", timeout=0.1)

        self.assertFalse(result.success)
        self.assertIn("timed out", result.error)

    def test_connection_error_is_failure_value(self):
        self.mock_llm.invoke.side_effect = ConnectionError("Connection refused")

        result = self.client.generate("q", "s")

        self.assertFalse(result.success)
        self.assertIn("Connection refused", result.error)

    def test_empty_output_is_failure(self):
        self.mock_llm.invoke.return_value = AIMessage(content="   ")

        result = self.client.generate("q", "s")

        self.assertFalse(result.success)
        self.assertEqual(result.text, "")

    def test_list_content_is_flattened(self):
        self.mock_llm.invoke.return_value = AIMessage(content=[{"type": "text", "text": "ls -la"}])

        result = self.client.generate("q", "s")

        self.assertTrue(result.success)
        self.assertEqual(result.text, "ls -la")

    def test_unsupported_provider(self):
        with self.assertRaises(ValueError):
            LLMClient(provider="carrier-pigeon")

    @patch('langchain_openai.ChatOpenAI')
    def test_model_rebuilt_when_timeout_changes(self, mock_chat_class):
        client = LLMClient(provider="openai", base_url="http://localhost:11434/v1", timeout=5)

        client._get_llm(5)
        client._get_llm(5)
        client._get_llm(10)

        self.assertEqual(mock_chat_class.call_count, 2)
        kwargs = mock_chat_class.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 10)
        self.assertEqual(kwargs["max_retries"], 0)
        self.assertEqual(kwargs["base_url"], "http://localhost:11434/v1")


class TestCannedBackend(unittest.TestCase):

    def test_responses_in_order_then_repeat_last(self):
        backend = CannedBackend(["ls", "pwd"])

        texts = [backend.generate("p", "s").text for _ in range(3)]

        self.assertEqual(texts, ["ls", "pwd", "pwd"])
        self.assertEqual(len(backend.calls), 3)

    def test_error(self):
        result = CannedBackend(error="unreachable").generate("p", "s", timeout=1)

        self.assertIsInstance(result, GenerationResult)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "unreachable")
