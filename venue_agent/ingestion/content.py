"""Content generation: one prompt with all harvested data, one JSON document back."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.errors import ExternalServiceError, MalformedResponseError
from venue_agent.core.schema import GeneratedContent, Venue
from venue_agent.db.repositories import ReferenceRepository
from venue_agent.services.ai.client import AIClient
from venue_agent.services.ai.prompts import (
    CONTENT_SYSTEM_PROMPT,
    PROMPT_VERSION,
    build_content_prompt,
)

logger = logging.getLogger(__name__)

CONTENT_MAX_TOKENS = 8000


@dataclass
class ContentResult:
    """Generated content plus the exchange that produced it."""

    content: GeneratedContent
    raw_response: str
    prompt_version: str = PROMPT_VERSION
    provider: str = ""
    model: str = ""
    references: dict[str, list[str]] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "content": self.content.model_dump(mode="json"),
            "raw_response": self.raw_response,
            "prompt_version": self.prompt_version,
            "provider": self.provider,
            "model": self.model,
        }


class ContentGenerator:
    """Builds the content prompt and validates the model's answer."""

    def __init__(self, ai_client: AIClient, reference_repo: ReferenceRepository) -> None:
        self.ai_client = ai_client
        self.reference_repo = reference_repo

    def reference_lists(self, city: str) -> dict[str, list[str]]:
        """Existing reference names the model should prefer, neighbourhoods limited to ``city``."""
        return {
            "cuisines": self.reference_repo.list_names(ReferenceKind.CUISINE),
            "categories": self.reference_repo.list_names(ReferenceKind.CATEGORY),
            "features": self.reference_repo.list_names(ReferenceKind.FEATURE),
            f"neighbourhoods in {city or 'the city'}": self.reference_repo.list_names(
                ReferenceKind.NEIGHBOURHOOD, scope=city
            ),
            "awards": self.reference_repo.list_names(ReferenceKind.AWARD),
        }

    async def generate(
        self,
        venue: Venue,
        business: dict[str, Any] | None,
        web: dict[str, Any] | None,
    ) -> ContentResult:
        """
        Generate structured content for a venue.

        Args:
            venue: The venue record.
            business: Normalized business data payload.
            web: Web content payload, or None when that stage failed.

        Raises:
            ExternalServiceError: If the model call fails.
            MalformedResponseError: If the response is not a valid content document.
        """
        references = self.reference_lists(venue.city)
        prompt = build_content_prompt(
            name=venue.name,
            address=venue.address,
            city=venue.city,
            business=business,
            web=web,
            references=references,
        )
        logger.info(f"Generating content for {venue.slug} ({len(prompt)} prompt chars)")

        result = await asyncio.to_thread(
            self.ai_client.generate_json, CONTENT_SYSTEM_PROMPT, prompt, CONTENT_MAX_TOKENS
        )
        if not result.success:
            if result.error_type == "api":
                raise ExternalServiceError("content-generation", result.error_message or "unknown error")
            raise MalformedResponseError(
                result.error_message or "unparsable content response", result.raw_response
            )

        try:
            content = GeneratedContent.model_validate(result.parsed_json)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Content response failed validation: {e}", result.raw_response
            ) from e

        return ContentResult(
            content=content,
            raw_response=result.raw_response,
            provider=self.ai_client.provider.value,
            model=self.ai_client.model,
            references=references,
        )
