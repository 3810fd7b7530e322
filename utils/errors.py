"""
AURACLE exception types

Errors raised across the pipeline, repository and API layers.
"""


class AuracleError(Exception):
    """Base class for all Auracle errors."""


class ConfigurationError(AuracleError):
    """Missing or invalid configuration (API keys, database URL, ...)."""


class LLMOperationError(AuracleError):
    """The LLM provider call failed or returned nothing usable."""


class PhaseExecutionError(AuracleError):
    """A pipeline phase failed."""

    def __init__(self, phase: str, cause: Exception = None):
        self.phase = phase
        self.cause = cause
        detail = str(cause) if cause else "Unknown error"
        super().__init__(f"{phase} failed: {detail}")


class InvalidTransitionError(AuracleError):
    """A story status change is not allowed from its current status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move story from '{current}' to '{target}'")


class StoryNotFoundError(AuracleError):
    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story not found: {story_id}")


class ImageGenerationError(AuracleError):
    """Every cover image generation method failed."""


class StorageError(AuracleError):
    """Uploading or fetching an asset failed."""
