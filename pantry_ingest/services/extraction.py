"""Extraction service: model-based parsing with a deterministic fallback.

Nothing in this module raises on provider problems during parsing. A
provider error, timeout or malformed payload is logged and turned into the
fallback parser's result with an advisory error string, so downstream code
always receives an ``ExtractionResult``.
"""

import logging
from typing import Any

from pydantic import ValidationError

from pantry_ingest.models.enums import UploadSourceType
from pantry_ingest.schemas.extraction import ExtractedItem, ExtractionResult, ProviderExtraction
from pantry_ingest.services.errors import ExtractionError
from pantry_ingest.services.heuristic_parser import FallbackParser
from pantry_ingest.services.llm import ExtractionProvider, ImageInput, get_extraction_provider
from pantry_ingest.services.llm_prompts import (
    EXTRACTION_SCHEMA,
    TEXT_EXTRACTION_SYSTEM_PROMPT,
    get_image_prompt,
    get_transcription_prompt,
)
from pantry_ingest.services.normalizer import clamp, validate_items

logger = logging.getLogger(__name__)

REVIEW_OVERALL_THRESHOLD = 0.7
REVIEW_ITEM_THRESHOLD = 0.6


def requires_review(overall_confidence: float, items: list[ExtractedItem]) -> bool:
    """Check the review rules that apply regardless of what the provider said.

    Review is required when overall confidence is below 0.7, any item is
    below 0.6, or the batch mixes acquisition with consumption.
    """
    if overall_confidence < REVIEW_OVERALL_THRESHOLD:
        return True
    if any(item.confidence < REVIEW_ITEM_THRESHOLD for item in items):
        return True
    actions = {item.action for item in items}
    return "add" in actions and "subtract" in actions


def mean_confidence(items: list[ExtractedItem]) -> float:
    if not items:
        return 0.0
    return sum(item.confidence for item in items) / len(items)


class ExtractionService:
    """Turn grocery text or photos into normalized extracted items."""

    def __init__(self, provider: ExtractionProvider | None) -> None:
        self.provider = provider

    @property
    def is_configured(self) -> bool:
        """Check if a model provider is available."""
        return self.provider is not None

    def _build_result(
        self,
        payload: dict[str, Any],
        original_text: str,
        use_mean_confidence: bool = False,
    ) -> ExtractionResult:
        """Validate a provider payload into a normalized result."""
        extraction = ProviderExtraction.model_validate(payload)

        items: list[ExtractedItem] = []
        for raw in extraction.items:
            try:
                items.append(ExtractedItem.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping invalid extracted item {raw!r}: {e}")
        items = validate_items(items)
        skipped = len(extraction.items) - len(items)

        if use_mean_confidence or extraction.overall_confidence is None:
            overall = mean_confidence(items)
        else:
            overall = clamp(float(extraction.overall_confidence), 0.0, 1.0)

        needs_review = (
            extraction.needs_review or skipped > 0 or requires_review(overall, items)
        )
        return ExtractionResult(
            items=items,
            overall_confidence=overall,
            original_text=original_text,
            needs_review=needs_review,
            used_fallback=False,
            provider=self.provider.name if self.provider else None,
        )

    @staticmethod
    def _fallback(text: str, error: str | None = None) -> ExtractionResult:
        result = FallbackParser.parse(text)
        result.items = validate_items(result.items)
        result.error = error
        return result

    def parse_text(self, text: str) -> ExtractionResult:
        """Parse grocery text into structured inventory updates."""
        if self.provider is None:
            logger.info("No extraction provider configured, using fallback parser")
            return self._fallback(text)

        try:
            payload = self.provider.complete_json(
                system_prompt=TEXT_EXTRACTION_SYSTEM_PROMPT,
                user_text=text,
                schema=EXTRACTION_SCHEMA,
            )
            return self._build_result(payload, original_text=text)
        except Exception as e:
            logger.error(f"Error parsing grocery text with {self.provider.name}: {e}")
            return self._fallback(text, error=f"AI parsing failed: {e}. Using fallback parser.")

    def parse_image(
        self,
        image_bytes: bytes,
        media_type: str = "image/jpeg",
        image_type: str = "receipt",
    ) -> ExtractionResult:
        """Parse a receipt or grocery list photo.

        The fallback parser cannot read images, so with no provider (or a
        failed call) the result is empty and flagged for review.
        """
        if self.provider is None:
            return ExtractionResult(
                items=[],
                overall_confidence=0.0,
                original_text="[Image processing requires a configured model provider]",
                needs_review=True,
                error="No extraction provider configured",
            )

        try:
            payload = self.provider.complete_json(
                system_prompt=TEXT_EXTRACTION_SYSTEM_PROMPT,
                user_text=get_image_prompt(image_type),
                schema=EXTRACTION_SCHEMA,
                image=ImageInput(data=image_bytes, media_type=media_type),
            )
            return self._build_result(
                payload,
                original_text=f"[Parsed from {image_type} image]",
                use_mean_confidence=True,
            )
        except Exception as e:
            logger.error(f"Error parsing {image_type} image with {self.provider.name}: {e}")
            return ExtractionResult(
                items=[],
                overall_confidence=0.0,
                original_text=f"[Failed to process {image_type} image]",
                needs_review=True,
                error=f"AI image parsing failed: {e}",
                provider=self.provider.name,
            )

    def transcribe_image(
        self,
        image_bytes: bytes,
        media_type: str,
        source_type: UploadSourceType,
    ) -> str:
        """Read a receipt or list photo into plain text lines.

        Raises:
            ExtractionError: If no provider is configured, the call fails or
                nothing readable was found.
        """
        if self.provider is None:
            raise ExtractionError("No extraction provider configured for image uploads")

        image_type = "receipt" if source_type == UploadSourceType.IMAGE_RECEIPT else "list"
        try:
            text = self.provider.transcribe(
                prompt=get_transcription_prompt(image_type),
                image=ImageInput(data=image_bytes, media_type=media_type),
            )
        except Exception as e:
            logger.error(f"Image transcription failed: {e}", exc_info=True)
            raise ExtractionError(f"Image transcription failed: {e}") from e

        if not text.strip():
            raise ExtractionError("No readable text found in image")
        return text


def get_extraction_service() -> ExtractionService:
    """Get an extraction service using the configured provider."""
    return ExtractionService(get_extraction_provider())
