"""Tests for AI response parsing and the provider clients."""

import json
from unittest.mock import MagicMock, patch

import pytest

from venue_agent.core.errors import ConfigError, MalformedResponseError
from venue_agent.services.ai.client import (
    AIProvider,
    GenerationResult,
    get_ai_client,
    get_ai_client_from_env,
    parse_json_object,
    strip_code_fences,
)
from venue_agent.services.ai.prompts import build_content_prompt, build_vision_prompt

SAMPLE_DOCUMENT = {"about": "Bombay cafe.", "cuisines": ["Indian"]}


class TestResponseParsing:
    """Tests for fence stripping and JSON parsing."""

    @pytest.mark.parametrize(
        "raw",
        [
            json.dumps(SAMPLE_DOCUMENT),
            f"```json\n{json.dumps(SAMPLE_DOCUMENT)}\n```",
            f"```JSON\n{json.dumps(SAMPLE_DOCUMENT)}```",
            f"```\n{json.dumps(SAMPLE_DOCUMENT)}\n```",
        ],
    )
    def test_fences_stripped(self, raw: str) -> None:
        """Test that fenced and bare documents parse the same."""
        assert parse_json_object(raw) == SAMPLE_DOCUMENT

    def test_strip_code_fences_plain_text(self) -> None:
        assert strip_code_fences("  {}  ") == "{}"

    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedResponseError, match="JSON parse error"):
            parse_json_object("```json\n{\"about\": \n```")

    def test_non_object(self) -> None:
        with pytest.raises(MalformedResponseError, match="Expected a JSON object"):
            parse_json_object("[1, 2]")

    def test_generation_results(self) -> None:
        """Test the parse and api failure shapes."""
        parsed = GenerationResult.from_response("not json")
        failed = GenerationResult.api_failure(RuntimeError("overloaded"))

        assert parsed.error_type == "parse"
        assert parsed.raw_response == "not json"
        assert failed.error_type == "api"
        assert failed.error_message == "API error: overloaded"


class TestClientFactory:
    """Tests for get_ai_client and get_ai_client_from_env."""

    def test_get_anthropic_client(self) -> None:
        with patch("anthropic.Anthropic"):
            client = get_ai_client("Anthropic", "key")
        assert client.provider == AIProvider.ANTHROPIC
        assert client.model == "claude-sonnet-4-20250514"

    def test_get_openai_client_with_model(self) -> None:
        with patch("openai.OpenAI"):
            client = get_ai_client(AIProvider.OPENAI, "key", model="gpt-4o-mini")
        assert client.provider == AIProvider.OPENAI
        assert client.model == "gpt-4o-mini"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            get_ai_client("mistral", "key")

    def test_missing_key(self, monkeypatch) -> None:
        """Test that a missing API key is a configuration error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            get_ai_client_from_env("anthropic")

    def test_key_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        with patch("openai.OpenAI") as mock_openai:
            get_ai_client_from_env(AIProvider.OPENAI)

        mock_openai.assert_called_once_with(api_key="sk-test")


class TestAnthropicClient:
    """Tests for AnthropicClient with a mocked SDK."""

    def test_generate_json(self) -> None:
        """Test a fenced response is parsed."""
        from venue_agent.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text=f"```json\n{json.dumps(SAMPLE_DOCUMENT)}\n```")]
        mock_anthropic.messages.create.return_value = mock_response

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            client = AnthropicClient(api_key="key")
            result = client.generate_json("system", "user")

        assert result.success
        assert result.parsed_json == SAMPLE_DOCUMENT
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    def test_api_error(self) -> None:
        """Test that SDK exceptions become api failures."""
        from venue_agent.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.side_effect = RuntimeError("overloaded")

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            result = AnthropicClient(api_key="key").generate_json("system", "user")

        assert not result.success
        assert result.error_type == "api"

    def test_analyze_image_sends_base64(self) -> None:
        """Test the image block of a vision request."""
        from venue_agent.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.return_value.content = [MagicMock(text='{"category": "food"}')]

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            result = AnthropicClient(api_key="key").analyze_image(b"abc", "image/png", "classify")

        assert result.parsed_json == {"category": "food"}
        content = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["source"] == {"type": "base64", "media_type": "image/png", "data": "YWJj"}
        assert content[1] == {"type": "text", "text": "classify"}


class TestOpenAIClient:
    """Tests for OpenAIClient with a mocked SDK."""

    def test_analyze_image_data_url(self) -> None:
        """Test that images are sent as data URLs and JSON is requested."""
        from venue_agent.services.ai.providers.openai import OpenAIClient

        mock_openai = MagicMock()
        message = MagicMock(content='{"score": 8}')
        mock_openai.chat.completions.create.return_value.choices = [MagicMock(message=message)]

        with patch("openai.OpenAI", return_value=mock_openai):
            result = OpenAIClient(api_key="key").analyze_image(b"abc", "image/jpeg", "rate")

        assert result.parsed_json == {"score": 8}
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        image_part = kwargs["messages"][0]["content"][1]
        assert image_part["image_url"]["url"] == "data:image/jpeg;base64,YWJj"


class TestPrompts:
    """Tests for prompt building."""

    def test_content_prompt_embeds_context(self) -> None:
        """Test that the research and reference names reach the prompt."""
        prompt = build_content_prompt(
            "Dishoom",
            "12 Upper St Martin's Ln, London",
            "London",
            {"name": "Dishoom", "reviews": ["Great daal"]},
            None,
            {"cuisines": ["Indian", "Thai"]},
        )

        assert "Dishoom" in prompt
        assert "Great daal" in prompt
        assert "Thai" in prompt
        assert "(no menu found)" in prompt

    def test_vision_prompt_default_location(self) -> None:
        assert "London" in build_vision_prompt("Dishoom", "")
