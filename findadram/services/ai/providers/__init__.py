"""AI provider implementations."""

from findadram.services.ai.providers.anthropic import AnthropicClient
from findadram.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
