"""Application services for Venue Agent."""

from venue_agent.services.ai import (
    AIClient,
    AIProvider,
    GenerationResult,
)
from venue_agent.services.publishing_service import (
    PublishingService,
    PublishResult,
)

__all__ = [
    "AIClient",
    "AIProvider",
    "GenerationResult",
    "PublishingService",
    "PublishResult",
]
