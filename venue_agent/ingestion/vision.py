"""Vision classification and quality gating for downloaded images."""

import logging

from pydantic import ValidationError

from venue_agent.core.errors import ExternalServiceError, MalformedResponseError
from venue_agent.core.schema import ImageAnalysis, QualityAssessment
from venue_agent.services.ai.client import AIClient, GenerationResult
from venue_agent.services.ai.prompts import build_quality_prompt, build_vision_prompt

logger = logging.getLogger(__name__)


def _raise_for_failure(result: GenerationResult, service: str) -> None:
    if result.success:
        return
    if result.error_type == "api":
        raise ExternalServiceError(service, result.error_message or "unknown error")
    raise MalformedResponseError(result.error_message or "unparsable response", result.raw_response)


class ImageClassifier:
    """Asks a vision-capable model what an image shows."""

    def __init__(self, ai_client: AIClient) -> None:
        self.ai_client = ai_client

    def classify(
        self,
        image_bytes: bytes,
        media_type: str,
        venue_name: str,
        location: str,
    ) -> ImageAnalysis:
        """
        Classify one image.

        Raises:
            ExternalServiceError: If the model call fails.
            MalformedResponseError: If the response is not the expected JSON.
        """
        result = self.ai_client.analyze_image(
            image_bytes, media_type, build_vision_prompt(venue_name, location)
        )
        _raise_for_failure(result, "vision")
        try:
            return ImageAnalysis.model_validate(result.parsed_json)
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid vision response: {e}", result.raw_response) from e


class QualityGate:
    """
    Optional 0-10 quality screen.

    Logos, screenshots, text-heavy images and images narrower than
    ``min_width`` are rejected regardless of score.
    """

    def __init__(self, ai_client: AIClient, threshold: float = 7.0, min_width: int = 500) -> None:
        self.ai_client = ai_client
        self.threshold = threshold
        self.min_width = min_width

    def assess(
        self,
        image_bytes: bytes,
        media_type: str,
        venue_name: str,
        width: int | None = None,
    ) -> QualityAssessment:
        """
        Score one image and decide whether it is accepted.

        Raises:
            ExternalServiceError: If the model call fails.
            MalformedResponseError: If the response is not the expected JSON.
        """
        result = self.ai_client.analyze_image(
            image_bytes, media_type, build_quality_prompt(venue_name)
        )
        _raise_for_failure(result, "quality-gate")
        try:
            assessment = QualityAssessment.model_validate(result.parsed_json)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Invalid quality response: {e}", result.raw_response
            ) from e

        reason = None
        if assessment.is_logo:
            reason = "logo"
        elif assessment.is_screenshot:
            reason = "screenshot"
        elif assessment.is_text_heavy:
            reason = "text-heavy"
        elif width is not None and width < self.min_width:
            reason = f"low resolution ({width}px wide)"
        elif assessment.score < self.threshold:
            reason = f"score {assessment.score:g} below {self.threshold:g}"

        assessment.accepted = reason is None
        assessment.rejection_reason = reason
        if reason:
            logger.debug(f"Quality gate rejected image: {reason}")
        return assessment
