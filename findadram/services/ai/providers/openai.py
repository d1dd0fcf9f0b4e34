"""OpenAI AI provider implementation."""

import base64
import logging

import openai

from findadram.services.ai.client import (
    DEFAULT_TIMEOUT,
    AIClient,
    AIProvider,
    AIServiceError,
    Attachment,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_JUDGE_MODEL = "gpt-4o-mini"


class OpenAIClient(AIClient):
    """OpenAI GPT AI client."""

    provider = AIProvider.OPENAI

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        judge_model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Extraction model name (defaults to gpt-4o).
            judge_model: Model used for duplicate judging.
            timeout: Per-request timeout in seconds.
        """
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
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
        user_content: str | list[dict] = prompt
        if attachment is not None:
            encoded = base64.b64encode(attachment.data).decode("ascii")
            data_url = f"data:{attachment.mime_type};base64,{encoded}"
            if attachment.mime_type == "application/pdf":
                part = {"type": "file", "file": {"filename": "menu.pdf", "file_data": data_url}}
            else:
                part = {"type": "image_url", "image_url": {"url": data_url}}
            user_content = [{"type": "text", "text": prompt}, part]

        messages: list[dict] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user_content})
        logger.debug(f"OpenAI request to {model or self.model} (attachment={attachment is not None})")

        try:
            response = self.client.chat.completions.create(
                model=model or self.model,
                max_tokens=max_tokens,
                messages=messages,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise AIServiceError(str(e)) from e

        return response.choices[0].message.content or ""
