"""Extraction schemas: items produced from text or images."""

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ItemAction = Literal["add", "subtract", "set"]

EXPIRATION_ALIASES = AliasChoices("expiration", "expirationDate", "expiryDate", "expiration_date")


class ExtractedItem(BaseModel):
    """A candidate inventory change read from user input.

    ``expiration`` left unset means "not provided"; an explicit ``None``
    means "known to have no expiration". The two are kept apart because
    applying an update clears the stored value only in the second case.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=255)
    quantity: float = 1.0
    unit: str | None = None
    action: ItemAction = "add"
    category: str | None = None
    location: str | None = None
    brand: str | None = None
    notes: str | None = None
    confidence: float = 0.5
    # Raw values are accepted here and canonicalized by the normalizer
    expiration: datetime | str | int | float | dict[str, Any] | None = Field(
        default=None, validation_alias=EXPIRATION_ALIASES
    )

    @property
    def expiration_provided(self) -> bool:
        """Check if the source said anything about expiration."""
        return "expiration" in self.model_fields_set


class ExtractionResult(BaseModel):
    """Outcome of one extraction call (model or fallback)."""

    items: list[ExtractedItem] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    original_text: str = ""
    needs_review: bool = True
    error: str | None = None
    used_fallback: bool = False
    provider: str | None = None


class ProviderExtraction(BaseModel):
    """Payload shape a model provider is asked to return."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: list[dict[str, Any]] = Field(default_factory=list)
    overall_confidence: float | None = Field(
        default=None,
        validation_alias=AliasChoices("overallConfidence", "overall_confidence", "confidence"),
    )
    needs_review: bool = Field(
        default=False, validation_alias=AliasChoices("needsReview", "needs_review")
    )


class ParseRequest(BaseModel):
    """Parse free-form text or a base64-encoded image."""

    text: str | None = Field(None, max_length=50000)
    image: str | None = None  # base64
    image_type: Literal["receipt", "list"] = "receipt"
    media_type: str = Field("image/jpeg", max_length=100)


class ParseResponse(BaseModel):
    """Parsed, normalized items ready for review."""

    success: bool = True
    updates: list[ExtractedItem]
    confidence: float
    needs_review: bool
    used_fallback: bool
    original_text: str
    warnings: str | None = None
    message: str
