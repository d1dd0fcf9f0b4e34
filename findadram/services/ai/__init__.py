"""AI menu extraction services for Find a Dram."""

from findadram.services.ai.client import (
    AIClient,
    AIProvider,
    AIServiceError,
    DedupJudgment,
    GenerationResult,
    get_ai_client,
    get_ai_client_from_env,
)

__all__ = [
    "AIClient",
    "AIProvider",
    "AIServiceError",
    "DedupJudgment",
    "GenerationResult",
    "get_ai_client",
    "get_ai_client_from_env",
]
