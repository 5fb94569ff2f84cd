"""OpenAI AI provider implementation."""

import base64
import logging

from venue_agent.services.ai.client import AIClient, AIProvider, GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAIClient(AIClient):
    """OpenAI GPT AI client."""

    provider = AIProvider.OPENAI

    def __init__(self, api_key: str, model: str | None = None):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Model name (defaults to gpt-4o).
        """
        import openai

        self.client = openai.OpenAI(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2048,
    ) -> GenerationResult:
        """Request a JSON document from GPT."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
            )
            raw_response = response.choices[0].message.content or ""
            logger.debug(f"Raw AI response: {raw_response[:500]}...")
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            return GenerationResult.api_failure(e)

        return GenerationResult.from_response(raw_response)

    def analyze_image(
        self,
        image_bytes: bytes,
        media_type: str,
        prompt: str,
        max_tokens: int = 1024,
    ) -> GenerationResult:
        """Assess an image with GPT's vision input."""
        encoded = base64.standard_b64encode(image_bytes).decode("ascii")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{encoded}"},
                            },
                        ],
                    }
                ],
                response_format={"type": "json_object"},
            )
            raw_response = response.choices[0].message.content or ""
            logger.debug(f"Raw vision response: {raw_response[:500]}...")
        except Exception as e:
            logger.error(f"OpenAI vision API error: {e}")
            return GenerationResult.api_failure(e)

        return GenerationResult.from_response(raw_response)
