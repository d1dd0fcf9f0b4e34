"""AI client interface and provider abstraction."""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from findadram.services.ai.prompts import (
    DEDUP_JUDGE_SYSTEM,
    TEXT_EXTRACTION_SYSTEM,
    VISION_EXTRACTION_SYSTEM,
    build_attachment_prompt,
    build_dedup_prompt,
    build_repair_prompt,
    build_text_prompt,
)

logger = logging.getLogger(__name__)

MAX_REPAIR_ATTEMPTS = 2
DEFAULT_TIMEOUT = 60.0

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class AIServiceError(Exception):
    """A provider request failed (network, auth, rate limit, server error)."""


@dataclass
class Attachment:
    """Binary content sent to a vision-capable model."""

    data: bytes
    mime_type: str


class MenuPayload(BaseModel):
    """
    Structural shape of an extraction response.

    Items stay as raw dicts; the extractor validates each one so a single
    bad line does not discard the whole menu.
    """

    bar_name: str | None = None
    whiskeys: list[dict[str, Any]]


class DedupJudgment(BaseModel):
    """Answer to "are these two names the same whiskey?"."""

    same_whiskey: bool
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class GenerationResult(BaseModel):
    """Result of an AI generation attempt."""

    success: bool
    raw_response: str
    parsed_json: dict[str, Any] | None = None
    menu: MenuPayload | None = None
    error_message: str | None = None
    repair_attempts: int = 0


def extract_json_text(raw_response: str) -> str:
    """Strip markdown fences and surrounding prose from a JSON response."""
    json_str = raw_response.strip()
    if json_str.startswith("```json"):
        json_str = json_str[7:]
    if json_str.startswith("```"):
        json_str = json_str[3:]
    if json_str.endswith("```"):
        json_str = json_str[:-3]
    json_str = json_str.strip()

    if not json_str.startswith("{"):
        match = _JSON_OBJECT.search(json_str)
        if match:
            json_str = match.group(0)
    return json_str


class AIClient(ABC):
    """
    Abstract base class for AI providers.

    Providers implement a single request primitive; prompting, JSON
    parsing and the repair loop are shared.
    """

    provider: AIProvider
    model: str
    judge_model: str

    @abstractmethod
    def _complete(
        self,
        system: str | None,
        prompt: str,
        attachment: Attachment | None = None,
        max_tokens: int = 4096,
        model: str | None = None,
    ) -> str:
        """
        Send one request and return the model's text output.

        Raises:
            AIServiceError: If the provider call fails.
        """

    def extract_menu(self, text: str) -> GenerationResult:
        """
        Extract whiskey items from menu page text.

        Args:
            text: Cleaned, truncated page text.

        Returns:
            GenerationResult with the parsed MenuPayload or error details.
        """
        return self._generate(TEXT_EXTRACTION_SYSTEM, build_text_prompt(text))

    def extract_menu_from_image(self, data: bytes, mime_type: str) -> GenerationResult:
        """Extract whiskey items from a photographed or scanned menu."""
        return self._generate(
            VISION_EXTRACTION_SYSTEM,
            build_attachment_prompt("image"),
            Attachment(data, mime_type),
        )

    def extract_menu_from_pdf(self, data: bytes) -> GenerationResult:
        """Extract whiskey items from a PDF menu."""
        return self._generate(
            VISION_EXTRACTION_SYSTEM,
            build_attachment_prompt("PDF"),
            Attachment(data, "application/pdf"),
            max_tokens=8192,
        )

    def judge_same_whiskey(self, name_a: str, name_b: str) -> DedupJudgment | None:
        """
        Ask the model whether two names are the same product.

        Returns:
            The judgment, or None if the request failed or the answer was unusable.
        """
        try:
            raw = self._complete(
                DEDUP_JUDGE_SYSTEM,
                build_dedup_prompt(name_a, name_b),
                max_tokens=256,
                model=self.judge_model,
            )
        except AIServiceError as e:
            logger.warning(f"Dedup judge request failed: {e}")
            return None

        try:
            return DedupJudgment.model_validate(json.loads(extract_json_text(raw)))
        except ValueError as e:
            logger.warning(f"Dedup judge returned unusable output: {e}")
            return None

    def repair_json(self, invalid_json: str, error_message: str) -> str:
        """
        Attempt to repair invalid JSON.

        Args:
            invalid_json: The malformed JSON string.
            error_message: The error message from the parser.

        Returns:
            The repaired JSON string, or the original on failure.
        """
        try:
            return self._complete(None, build_repair_prompt(invalid_json, error_message))
        except AIServiceError as e:
            logger.error(f"JSON repair API error: {e}")
            return invalid_json

    def _generate(
        self,
        system: str,
        prompt: str,
        attachment: Attachment | None = None,
        max_tokens: int = 4096,
    ) -> GenerationResult:
        try:
            raw_response = self._complete(system, prompt, attachment, max_tokens)
        except AIServiceError as e:
            logger.error(f"{self.provider.value} API error: {e}")
            return GenerationResult(
                success=False,
                raw_response="",
                error_message=f"API error: {e}",
            )

        logger.info(f"AI extraction received response ({len(raw_response)} chars)")
        logger.debug(f"Raw AI response: {raw_response[:1000]}...")
        return self._parse_and_validate(raw_response)

    def _parse_and_validate(
        self,
        raw_response: str,
        repair_attempts: int = 0,
    ) -> GenerationResult:
        """
        Parse a JSON response and validate it against MenuPayload.

        Asks the model to repair its output up to MAX_REPAIR_ATTEMPTS times.
        """
        json_str = extract_json_text(raw_response)

        try:
            parsed_json = json.loads(json_str)
        except json.JSONDecodeError as e:
            error_msg = f"JSON parse error: {e}"
            logger.warning(f"{error_msg} (attempt {repair_attempts + 1})")

            if repair_attempts < MAX_REPAIR_ATTEMPTS:
                repaired = self.repair_json(json_str, str(e))
                return self._parse_and_validate(repaired, repair_attempts=repair_attempts + 1)

            return GenerationResult(
                success=False,
                raw_response=raw_response,
                error_message=error_msg,
                repair_attempts=repair_attempts,
            )

        try:
            menu = MenuPayload.model_validate(parsed_json)
        except ValueError as e:
            error_msg = f"Validation error: {e}"
            logger.warning(f"{error_msg} (attempt {repair_attempts + 1})")

            if repair_attempts < MAX_REPAIR_ATTEMPTS:
                repaired = self.repair_json(
                    json.dumps(parsed_json, indent=2),
                    f"Schema validation failed: {e}",
                )
                return self._parse_and_validate(repaired, repair_attempts=repair_attempts + 1)

            return GenerationResult(
                success=False,
                raw_response=raw_response,
                parsed_json=parsed_json if isinstance(parsed_json, dict) else None,
                error_message=error_msg,
                repair_attempts=repair_attempts,
            )

        logger.info(f"AI extraction parsed {len(menu.whiskeys)} raw items")
        return GenerationResult(
            success=True,
            raw_response=raw_response,
            parsed_json=parsed_json,
            menu=menu,
            repair_attempts=repair_attempts,
        )


def get_ai_client(
    provider: AIProvider | str,
    api_key: str,
    model: str | None = None,
) -> AIClient:
    """
    Factory function to get an AI client for the specified provider.

    Args:
        provider: The AI provider to use.
        api_key: The API key for the provider.
        model: Optional model name override.

    Returns:
        An AIClient instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if isinstance(provider, str):
        provider = AIProvider(provider.lower())

    if provider == AIProvider.ANTHROPIC:
        from findadram.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from findadram.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


def get_ai_client_from_env() -> AIClient:
    """
    Create an AI client from environment variables.

    Reads AI_PROVIDER (default "anthropic"), AI_MODEL, and the matching
    ANTHROPIC_API_KEY or OPENAI_API_KEY.

    Raises:
        ValueError: If the provider is unsupported or its key is missing.
    """
    provider = os.environ.get("AI_PROVIDER", "anthropic").lower()
    model = os.environ.get("AI_MODEL")

    if provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")

    return get_ai_client(provider=provider, api_key=api_key, model=model)
