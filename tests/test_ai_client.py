"""Tests for the AI client abstraction and providers."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from findadram.services.ai.client import (
    MAX_REPAIR_ATTEMPTS,
    AIClient,
    AIProvider,
    AIServiceError,
    Attachment,
    extract_json_text,
    get_ai_client,
    get_ai_client_from_env,
)

SAMPLE_MENU = {
    "bar_name": "The Dram Shop",
    "whiskeys": [
        {"name": "Buffalo Trace", "type": "bourbon", "price": 12},
        {"name": "Lagavulin 16", "type": "scotch", "price": 18, "pour_size": "2oz"},
    ],
}


class ScriptedClient(AIClient):
    """AIClient whose requests return queued responses."""

    provider = AIProvider.ANTHROPIC
    model = "test-model"
    judge_model = "test-judge"

    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def _complete(self, system, prompt, attachment=None, max_tokens=4096, model=None) -> str:
        self.calls.append(
            {
                "system": system,
                "prompt": prompt,
                "attachment": attachment,
                "max_tokens": max_tokens,
                "model": model,
            }
        )
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TestExtractJsonText:
    """Tests for extract_json_text."""

    def test_plain_json(self) -> None:
        assert extract_json_text('{"a": 1}') == '{"a": 1}'

    def test_markdown_fences(self) -> None:
        assert extract_json_text('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert extract_json_text('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_prose(self) -> None:
        text = 'Here is the menu:\n{"a": 1}\nLet me know if you need more.'
        assert extract_json_text(text) == '{"a": 1}'


class TestMenuExtraction:
    """Tests for the shared extraction flow."""

    def test_valid_response(self) -> None:
        client = ScriptedClient([json.dumps(SAMPLE_MENU)])
        result = client.extract_menu("Buffalo Trace $12 ...")

        assert result.success is True
        assert result.menu.bar_name == "The Dram Shop"
        assert len(result.menu.whiskeys) == 2
        assert result.repair_attempts == 0
        assert "MENU CONTENT" in client.calls[0]["prompt"]
        assert client.calls[0]["attachment"] is None

    def test_empty_menu_is_success(self) -> None:
        client = ScriptedClient(['{"bar_name": null, "whiskeys": []}'])
        result = client.extract_menu("Cocktails only")
        assert result.success is True
        assert result.menu.whiskeys == []

    def test_repairs_invalid_json(self) -> None:
        client = ScriptedClient(['{"whiskeys": [', json.dumps(SAMPLE_MENU)])
        result = client.extract_menu("menu")

        assert result.success is True
        assert result.repair_attempts == 1
        assert client.calls[1]["system"] is None
        assert "INVALID JSON" in client.calls[1]["prompt"]

    def test_repairs_schema_mismatch(self) -> None:
        client = ScriptedClient(['{"items": []}', json.dumps(SAMPLE_MENU)])
        result = client.extract_menu("menu")
        assert result.success is True
        assert result.repair_attempts == 1

    def test_gives_up_after_max_repairs(self) -> None:
        client = ScriptedClient(["not json"] * (MAX_REPAIR_ATTEMPTS + 1))
        result = client.extract_menu("menu")

        assert result.success is False
        assert "JSON parse error" in result.error_message
        assert result.repair_attempts == MAX_REPAIR_ATTEMPTS
        assert len(client.calls) == MAX_REPAIR_ATTEMPTS + 1

    def test_api_error(self) -> None:
        client = ScriptedClient([AIServiceError("rate limited")])
        result = client.extract_menu("menu")

        assert result.success is False
        assert result.error_message == "API error: rate limited"

    def test_repair_failure_returns_original(self) -> None:
        client = ScriptedClient([AIServiceError("down")])
        assert client.repair_json('{"a":', "Expecting value") == '{"a":'

    def test_image_extraction_sends_attachment(self) -> None:
        client = ScriptedClient([json.dumps(SAMPLE_MENU)])
        result = client.extract_menu_from_image(b"\x89PNG", "image/png")

        assert result.success is True
        attachment = client.calls[0]["attachment"]
        assert attachment == Attachment(b"\x89PNG", "image/png")
        assert "menu image" in client.calls[0]["prompt"]

    def test_pdf_extraction_uses_larger_budget(self) -> None:
        client = ScriptedClient([json.dumps(SAMPLE_MENU)])
        client.extract_menu_from_pdf(b"%PDF-1.7")

        assert client.calls[0]["attachment"].mime_type == "application/pdf"
        assert client.calls[0]["max_tokens"] == 8192


class TestDedupJudge:
    """Tests for judge_same_whiskey."""

    def test_judgment(self) -> None:
        client = ScriptedClient(
            ['{"same_whiskey": true, "confidence": 0.92, "reasoning": "Same product"}']
        )
        judgment = client.judge_same_whiskey("Glendronach 12", "The GlenDronach 12 Year Old")

        assert judgment.same_whiskey is True
        assert judgment.confidence == 0.92
        assert client.calls[0]["model"] == "test-judge"

    def test_api_error_returns_none(self) -> None:
        client = ScriptedClient([AIServiceError("timeout")])
        assert client.judge_same_whiskey("a", "b") is None

    def test_unusable_answer_returns_none(self) -> None:
        client = ScriptedClient(["I think so"])
        assert client.judge_same_whiskey("a", "b") is None

    def test_out_of_range_confidence_returns_none(self) -> None:
        client = ScriptedClient(['{"same_whiskey": true, "confidence": 7}'])
        assert client.judge_same_whiskey("a", "b") is None


class TestAnthropicClient:
    """Tests for the Anthropic provider."""

    def test_text_request(self) -> None:
        from findadram.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.return_value = MagicMock(
            content=[MagicMock(type="text", text=json.dumps(SAMPLE_MENU))]
        )

        with patch("anthropic.Anthropic", return_value=mock_anthropic) as factory:
            client = AnthropicClient(api_key="test-key")
            result = client.extract_menu("Buffalo Trace $12")

        assert result.success is True
        factory.assert_called_once()
        assert factory.call_args.kwargs["max_retries"] == 0
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs["model"] == client.model
        assert "system" in kwargs
        assert isinstance(kwargs["messages"][0]["content"], str)

    def test_image_request(self) -> None:
        from findadram.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.return_value = MagicMock(
            content=[MagicMock(type="text", text=json.dumps(SAMPLE_MENU))]
        )

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            client = AnthropicClient(api_key="test-key")
            client.extract_menu_from_image(b"\xff\xd8\xff", "image/jpeg")

        content = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/jpeg"
        assert content[1]["type"] == "text"

    def test_pdf_request_uses_document_block(self) -> None:
        from findadram.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.return_value = MagicMock(
            content=[MagicMock(type="text", text=json.dumps(SAMPLE_MENU))]
        )

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            client = AnthropicClient(api_key="test-key")
            client.extract_menu_from_pdf(b"%PDF-1.7")

        content = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "document"

    def test_api_error_is_wrapped(self) -> None:
        import anthropic

        from findadram.services.ai.providers.anthropic import AnthropicClient

        mock_anthropic = MagicMock()
        mock_anthropic.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )

        with patch("anthropic.Anthropic", return_value=mock_anthropic):
            client = AnthropicClient(api_key="test-key")
            with pytest.raises(AIServiceError):
                client._complete(None, "hello")


class TestOpenAIClient:
    """Tests for the OpenAI provider."""

    def test_image_request(self) -> None:
        from findadram.services.ai.providers.openai import OpenAIClient

        mock_openai = MagicMock()
        mock_openai.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content=json.dumps(SAMPLE_MENU)))]
        )

        with patch("openai.OpenAI", return_value=mock_openai):
            client = OpenAIClient(api_key="test-key")
            result = client.extract_menu_from_image(b"\x89PNG", "image/png")

        assert result.success is True
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["role"] == "system"
        parts = kwargs["messages"][1]["content"]
        assert parts[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_api_error_is_wrapped(self) -> None:
        import openai

        from findadram.services.ai.providers.openai import OpenAIClient

        mock_openai = MagicMock()
        mock_openai.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )

        with patch("openai.OpenAI", return_value=mock_openai):
            client = OpenAIClient(api_key="test-key")
            result = client.extract_menu("menu")

        assert result.success is False
        assert result.error_message.startswith("API error")


class TestClientFactory:
    """Tests for client factories."""

    def test_get_ai_client(self) -> None:
        from findadram.services.ai.providers.openai import OpenAIClient

        with patch("openai.OpenAI"):
            client = get_ai_client("OpenAI", api_key="key", model="gpt-test")
        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-test"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            get_ai_client("mystery", api_key="key")

    def test_from_env_anthropic(self, monkeypatch) -> None:
        from findadram.services.ai.providers.anthropic import AnthropicClient

        monkeypatch.setenv("AI_PROVIDER", "anthropic")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
        monkeypatch.delenv("AI_MODEL", raising=False)
        with patch("anthropic.Anthropic"):
            client = get_ai_client_from_env()
        assert isinstance(client, AnthropicClient)

    def test_from_env_missing_key(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "openai")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            get_ai_client_from_env()

    def test_from_env_unknown_provider(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "mystery")
        with pytest.raises(ValueError):
            get_ai_client_from_env()
