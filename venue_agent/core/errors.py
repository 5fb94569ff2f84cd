"""Project-wide exception hierarchy for Venue Agent.

Expected validation outcomes (an image failing a hard gate, a menu line that
is not an item) are never raised; they are recorded as exclusion reasons.
"""

from typing import Any


class VenueAgentError(Exception):
    """Base exception for all Venue Agent errors."""


class ConfigError(VenueAgentError):
    """Raised when configuration is missing or invalid."""


class ExternalServiceError(VenueAgentError):
    """Raised when an external service call fails (network, HTTP, non-2xx)."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class MalformedResponseError(VenueAgentError):
    """Raised when a response parses but does not have the expected shape."""

    def __init__(self, message: str, raw_response: str = ""):
        self.raw_response = raw_response
        super().__init__(message)


class ReferenceConflictError(VenueAgentError):
    """Raised when a reference entity insert collides with a concurrent writer."""


class DuplicateVenueError(VenueAgentError):
    """Raised when a venue with the same slug already exists."""

    def __init__(self, slug: str, existing_id: str):
        self.slug = slug
        self.existing_id = existing_id
        super().__init__(f"Venue with slug '{slug}' already exists ({existing_id})")


class StageError(VenueAgentError):
    """Raised when a pipeline stage fails; carries the stage name and detail."""

    def __init__(
        self,
        stage: str,
        message: str,
        error_type: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.stage = stage
        self.message = message
        self.error_type = error_type or "StageError"
        self.details = details or {}
        super().__init__(f"Stage '{stage}' failed: {message}")

    def to_dict(self) -> dict[str, Any]:
        data = {"stage": self.stage, "message": self.message, "error_type": self.error_type}
        if self.details:
            data["details"] = self.details
        return data


class ResumeError(VenueAgentError):
    """Raised when a job cannot be resumed from the requested stage."""
