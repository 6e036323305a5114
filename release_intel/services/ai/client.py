"""AI client interface and provider abstraction."""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class GenerationResult(BaseModel):
    """Result of an AI generation attempt."""

    success: bool
    raw_response: str
    parsed_json: dict[str, Any] | None = None
    error_message: str | None = None


def strip_code_fences(raw_response: str) -> str:
    """Remove markdown code fences around a JSON response."""
    json_str = raw_response.strip()
    if json_str.startswith("```json"):
        json_str = json_str[7:]
    if json_str.startswith("```"):
        json_str = json_str[3:]
    if json_str.endswith("```"):
        json_str = json_str[:-3]
    return json_str.strip()


def parse_json_response(raw_response: str) -> GenerationResult:
    """
    Parse a raw model response into a JSON object.

    Args:
        raw_response: The raw text returned by the provider.

    Returns:
        GenerationResult with parsed_json set on success.
    """
    if not raw_response.strip():
        return GenerationResult(
            success=False, raw_response=raw_response, error_message="Empty response"
        )

    try:
        parsed = json.loads(strip_code_fences(raw_response))
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse error: {e}")
        return GenerationResult(
            success=False,
            raw_response=raw_response,
            error_message=f"JSON parse error: {str(e)}",
        )

    if not isinstance(parsed, dict):
        return GenerationResult(
            success=False,
            raw_response=raw_response,
            error_message="Response is not a JSON object",
        )

    return GenerationResult(success=True, raw_response=raw_response, parsed_json=parsed)


class AIClient(ABC):
    """Abstract base class for AI providers."""

    provider: AIProvider
    model: str

    @abstractmethod
    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
    ) -> GenerationResult:
        """
        Ask the model for a single JSON object.

        Args:
            system_prompt: Instructions, including the expected JSON shape.
            user_prompt: The content to work on.
            temperature: Sampling temperature.

        Returns:
            GenerationResult with the parsed object or error details.
            Provider errors are reported here, never raised.
        """
        pass


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
        from release_intel.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from release_intel.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


_API_KEY_ENV = {
    AIProvider.OPENAI: "OPENAI_API_KEY",
    AIProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def ai_client_from_env(model_env: str | None = None) -> AIClient | None:
    """
    Build an AI client from environment variables.

    AI_PROVIDER selects the provider (default openai) and AI_MODEL the model.
    ``model_env`` names a more specific model variable that wins over AI_MODEL.

    Returns:
        An AIClient, or None when the provider's API key is not set.
    """
    provider = AIProvider(os.environ.get("AI_PROVIDER", AIProvider.OPENAI.value).lower())
    api_key = os.environ.get(_API_KEY_ENV[provider])
    if not api_key:
        logger.warning(f"{_API_KEY_ENV[provider]} not set; AI features disabled")
        return None

    model = (model_env and os.environ.get(model_env)) or os.environ.get("AI_MODEL") or None
    return get_ai_client(provider, api_key=api_key, model=model)
