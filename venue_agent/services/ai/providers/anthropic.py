"""Anthropic (Claude) AI provider implementation."""

import base64
import logging

from venue_agent.services.ai.client import AIClient, AIProvider, GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicClient(AIClient):
    """Anthropic Claude AI client."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, api_key: str, model: str | None = None):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model name (defaults to claude-sonnet-4-20250514).
        """
        import anthropic

        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2048,
    ) -> GenerationResult:
        """
        Request a JSON document from Claude.

        Args:
            system_prompt: Fixed instructions for the model.
            user_prompt: The prompt with all harvested context embedded.
            max_tokens: Response token budget.

        Returns:
            GenerationResult with the parsed JSON or error details.
        """
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
            raw_response = response.content[0].text
            logger.info(f"Content generation received response ({len(raw_response)} chars)")
            logger.debug(f"Raw AI response: {raw_response[:1000]}...")
        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            return GenerationResult.api_failure(e)

        return GenerationResult.from_response(raw_response)

    def analyze_image(
        self,
        image_bytes: bytes,
        media_type: str,
        prompt: str,
        max_tokens: int = 1024,
    ) -> GenerationResult:
        """
        Classify an image with Claude's vision input.

        Args:
            image_bytes: Raw image data.
            media_type: MIME type of the image.
            prompt: Instructions including venue context.
            max_tokens: Response token budget.

        Returns:
            GenerationResult with the parsed JSON or error details.
        """
        encoded = base64.standard_b64encode(image_bytes).decode("ascii")
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": encoded,
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
            raw_response = response.content[0].text
            logger.debug(f"Raw vision response: {raw_response[:500]}...")
        except Exception as e:
            logger.error(f"Anthropic vision API error: {e}")
            return GenerationResult.api_failure(e)

        return GenerationResult.from_response(raw_response)
