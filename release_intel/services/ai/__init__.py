"""AI provider services for Release Intel."""

from release_intel.services.ai.client import (
    AIClient,
    AIProvider,
    GenerationResult,
    ai_client_from_env,
    get_ai_client,
)

__all__ = [
    "AIClient",
    "AIProvider",
    "GenerationResult",
    "ai_client_from_env",
    "get_ai_client",
]
