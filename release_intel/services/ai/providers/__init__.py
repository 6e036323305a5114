"""AI provider implementations."""

from release_intel.services.ai.providers.anthropic import AnthropicClient
from release_intel.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
