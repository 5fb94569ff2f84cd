"""AI client interface and provider abstraction."""

import json
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel

from venue_agent.core.errors import ConfigError, MalformedResponseError

API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def strip_code_fences(raw_response: str) -> str:
    """Remove stray markdown fencing (```json ... ```) around a JSON document."""
    text = raw_response.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```JSON"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_json_object(raw_response: str) -> dict[str, Any]:
    """
    Parse a model response as a single JSON object.

    Raises:
        MalformedResponseError: If the text is not valid JSON or not an object.
    """
    json_str = strip_code_fences(raw_response)
    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"JSON parse error: {e}", raw_response) from e
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(parsed).__name__}", raw_response
        )
    return parsed


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
    error_type: str | None = None  # "api" or "parse"

    @classmethod
    def from_response(cls, raw_response: str) -> "GenerationResult":
        """Build a result by parsing the raw model output as JSON."""
        try:
            parsed = parse_json_object(raw_response)
        except MalformedResponseError as e:
            return cls(
                success=False,
                raw_response=raw_response,
                error_message=str(e),
                error_type="parse",
            )
        return cls(success=True, raw_response=raw_response, parsed_json=parsed)

    @classmethod
    def api_failure(cls, error: Exception) -> "GenerationResult":
        return cls(
            success=False,
            raw_response="",
            error_message=f"API error: {error}",
            error_type="api",
        )


class AIClient(ABC):
    """Abstract base class for AI providers."""

    provider: AIProvider
    model: str

    @abstractmethod
    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2048,
    ) -> GenerationResult:
        """
        Request a single JSON document.

        Args:
            system_prompt: Fixed instructions for the model.
            user_prompt: The prompt with all harvested context embedded.
            max_tokens: Response token budget.

        Returns:
            GenerationResult with the parsed JSON or error details.
        """
        pass

    @abstractmethod
    def analyze_image(
        self,
        image_bytes: bytes,
        media_type: str,
        prompt: str,
        max_tokens: int = 1024,
    ) -> GenerationResult:
        """
        Send an image plus instructions and request a JSON verdict.

        Args:
            image_bytes: Raw image data.
            media_type: MIME type of the image.
            prompt: Instructions including venue context.
            max_tokens: Response token budget.

        Returns:
            GenerationResult with the parsed JSON or error details.
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
        from venue_agent.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from venue_agent.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


def get_ai_client_from_env(provider: AIProvider | str, model: str | None = None) -> AIClient:
    """
    Create an AI client using the provider's API key from the environment.

    Raises:
        ConfigError: If the API key variable is not set.
    """
    provider_name = provider.value if isinstance(provider, AIProvider) else provider.lower()
    env_var = API_KEY_ENV_VARS.get(provider_name)
    if env_var is None:
        raise ConfigError(f"Unsupported AI provider: {provider_name}")
    api_key = os.environ.get(env_var)
    if not api_key:
        raise ConfigError(f"{env_var} environment variable is required")
    return get_ai_client(provider_name, api_key, model)
