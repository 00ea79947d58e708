"""Domain exceptions raised by services and translated to HTTP errors by the API."""


class PantryIngestError(Exception):
    """Base class for service errors."""


class NotFoundError(PantryIngestError):
    """A requested record does not exist (or belongs to another user)."""


class UploadStateError(PantryIngestError):
    """An upload transition was requested from the wrong state."""


class UploadValidationError(PantryIngestError):
    """An upload reservation or write was rejected."""


class ExtractionError(PantryIngestError):
    """Text could not be read from an uploaded file."""


class AgentConfigurationError(PantryIngestError):
    """The requested agent controller cannot run with the current settings."""


class AgentTurnLimitError(PantryIngestError):
    """The controller did not finish within the configured number of turns."""

    def __init__(self, max_turns: int) -> None:
        super().__init__(f"Agent exceeded max turns ({max_turns})")
        self.max_turns = max_turns
