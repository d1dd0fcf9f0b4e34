"""Anthropic (Claude) AI provider implementation."""

import base64
import logging

import anthropic

from findadram.services.ai.client import (
    DEFAULT_TIMEOUT,
    AIClient,
    AIProvider,
    AIServiceError,
    Attachment,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-6"
DEFAULT_JUDGE_MODEL = "claude-haiku-4-5-20251001"


class AnthropicClient(AIClient):
    """Anthropic Claude AI client."""

    provider = AIProvider.ANTHROPIC

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        judge_model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Extraction model name (defaults to claude-sonnet-4-6).
            judge_model: Model used for duplicate judging.
            timeout: Per-request timeout in seconds.
        """
        # Retries are the caller's decision
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model or DEFAULT_MODEL
        self.judge_model = judge_model or DEFAULT_JUDGE_MODEL

    def _complete(
        self,
        system: str | None,
        prompt: str,
        attachment: Attachment | None = None,
        max_tokens: int = 4096,
        model: str | None = None,
    ) -> str:
        content: str | list[dict] = prompt
        if attachment is not None:
            block_type = "document" if attachment.mime_type == "application/pdf" else "image"
            content = [
                {
                    "type": block_type,
                    "source": {
                        "type": "base64",
                        "media_type": attachment.mime_type,
                        "data": base64.b64encode(attachment.data).decode("ascii"),
                    },
                },
                {"type": "text", "text": prompt},
            ]

        request: dict = {
            "model": model or self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            request["system"] = system

        logger.debug(f"Anthropic request to {request['model']} (attachment={attachment is not None})")

        try:
            response = self.client.messages.create(**request)
        except anthropic.APIError as e:
            raise AIServiceError(str(e)) from e

        return "".join(block.text for block in response.content if block.type == "text")
