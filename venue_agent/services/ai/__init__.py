"""AI services for Venue Agent."""

from venue_agent.services.ai.client import (
    AIClient,
    AIProvider,
    GenerationResult,
    get_ai_client,
    get_ai_client_from_env,
    parse_json_object,
    strip_code_fences,
)

__all__ = [
    "AIClient",
    "AIProvider",
    "GenerationResult",
    "get_ai_client",
    "get_ai_client_from_env",
    "parse_json_object",
    "strip_code_fences",
]
