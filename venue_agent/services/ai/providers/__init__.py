"""AI provider implementations."""

from venue_agent.services.ai.providers.anthropic import AnthropicClient
from venue_agent.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
