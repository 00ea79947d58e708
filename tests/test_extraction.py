"""Tests for the extraction service adapter."""

import pytest

from pantry_ingest.models.enums import UploadSourceType
from pantry_ingest.schemas.extraction import ExtractedItem
from pantry_ingest.services.errors import ExtractionError
from pantry_ingest.services.extraction import ExtractionService, requires_review
from pantry_ingest.services.llm import parse_json_response


def _payload(items, overall=0.95, needs_review=False):
    return {"items": items, "overallConfidence": overall, "needsReview": needs_review}


class TestRequiresReview:
    """Tests for the review rules."""

    def test_low_overall_confidence(self):
        assert requires_review(0.69, [ExtractedItem(name="Milk", confidence=0.9)])

    def test_low_item_confidence(self):
        assert requires_review(0.9, [ExtractedItem(name="Milk", confidence=0.59)])

    def test_mixed_add_and_subtract(self):
        items = [
            ExtractedItem(name="Milk", action="add", confidence=0.9),
            ExtractedItem(name="Eggs", action="subtract", confidence=0.9),
        ]
        assert requires_review(0.9, items)

    def test_confident_single_action(self):
        items = [
            ExtractedItem(name="Milk", action="add", confidence=0.9),
            ExtractedItem(name="Eggs", action="set", confidence=0.7),
        ]
        assert not requires_review(0.9, items)


class TestParseText:
    """Tests for ExtractionService.parse_text."""

    def test_without_provider_uses_fallback(self):
        result = ExtractionService(None).parse_text("bought 2 gallons of milk")
        assert result.used_fallback is True
        assert result.error is None
        assert result.items[0].name == "Milk"

    def test_provider_result_is_normalized(self, fake_provider_factory):
        provider = fake_provider_factory(
            payload=_payload(
                [
                    {
                        "name": "whole milk",
                        "quantity": 2,
                        "unit": "gallons",
                        "action": "add",
                        "category": "Dairy",
                        "confidence": 0.95,
                        "expirationDate": "2025-03-01",
                    }
                ]
            )
        )
        result = ExtractionService(provider).parse_text("bought 2 gallons of whole milk")

        assert result.used_fallback is False
        assert result.provider == "fake"
        assert result.needs_review is False
        assert result.overall_confidence == 0.95
        [item] = result.items
        assert item.name == "Whole Milk"
        assert item.unit == "gallon"
        assert item.category == "dairy"
        assert item.expiration.isoformat() == "2025-03-01T00:00:00+00:00"

    def test_review_forced_regardless_of_provider_flag(self, fake_provider_factory):
        provider = fake_provider_factory(
            payload=_payload(
                [
                    {"name": "Milk", "quantity": 1, "action": "add", "confidence": 0.9},
                    {"name": "Eggs", "quantity": 3, "action": "subtract", "confidence": 0.9},
                ],
                overall=0.9,
                needs_review=False,
            )
        )
        result = ExtractionService(provider).parse_text("got milk, used eggs")
        assert result.needs_review is True

    def test_invalid_items_are_skipped_and_force_review(self, fake_provider_factory):
        provider = fake_provider_factory(
            payload=_payload(
                [
                    {"name": "Milk", "quantity": 1, "action": "add", "confidence": 0.95},
                    {"name": "Eggs", "quantity": 3, "action": "steal", "confidence": 0.95},
                    {"quantity": 2},
                ]
            )
        )
        result = ExtractionService(provider).parse_text("milk and eggs")
        assert [i.name for i in result.items] == ["Milk"]
        assert result.needs_review is True

    def test_provider_error_falls_back(self, fake_provider_factory):
        provider = fake_provider_factory(error=TimeoutError("timed out"))
        result = ExtractionService(provider).parse_text("bought 2 gallons of milk")

        assert result.used_fallback is True
        assert result.needs_review is True
        assert result.error == "AI parsing failed: timed out. Using fallback parser."
        assert result.items[0].name == "Milk"

    def test_malformed_payload_falls_back(self, fake_provider_factory):
        provider = fake_provider_factory(payload={"items": "not a list"})
        result = ExtractionService(provider).parse_text("bought bread")
        assert result.used_fallback is True
        assert result.error.startswith("AI parsing failed:")
        assert result.items[0].name == "Bread"


class TestParseImage:
    """Tests for ExtractionService.parse_image."""

    def test_without_provider_returns_empty_result(self):
        result = ExtractionService(None).parse_image(b"\xff\xd8", "image/jpeg", "receipt")
        assert result.items == []
        assert result.needs_review is True
        assert result.error == "No extraction provider configured"

    def test_overall_confidence_is_item_mean(self, fake_provider_factory):
        provider = fake_provider_factory(
            payload=_payload(
                [
                    {"name": "Milk", "quantity": 1, "confidence": 0.9},
                    {"name": "Bread", "quantity": 1, "confidence": 0.7},
                ],
                overall=0.1,
            )
        )
        result = ExtractionService(provider).parse_image(b"img", "image/png", "list")

        assert result.overall_confidence == pytest.approx(0.8)
        assert result.needs_review is False
        assert provider.calls[0]["image"].media_type == "image/png"
        assert result.original_text == "[Parsed from list image]"

    def test_provider_error_returns_empty_result(self, fake_provider_factory):
        provider = fake_provider_factory(error=RuntimeError("bad image"))
        result = ExtractionService(provider).parse_image(b"img", "image/jpeg", "receipt")
        assert result.items == []
        assert result.needs_review is True
        assert "bad image" in result.error


class TestTranscribeImage:
    """Tests for ExtractionService.transcribe_image."""

    def test_returns_transcript(self, fake_provider_factory):
        provider = fake_provider_factory(transcript="MILK 2%  3.49\nEGGS 12CT  4.99")
        text = ExtractionService(provider).transcribe_image(
            b"img", "image/jpeg", UploadSourceType.IMAGE_RECEIPT
        )
        assert "EGGS" in text

    def test_without_provider_raises(self):
        with pytest.raises(ExtractionError):
            ExtractionService(None).transcribe_image(
                b"img", "image/jpeg", UploadSourceType.IMAGE_LIST
            )

    def test_provider_failure_raises(self, fake_provider_factory):
        provider = fake_provider_factory(transcribe_error=RuntimeError("boom"))
        with pytest.raises(ExtractionError, match="boom"):
            ExtractionService(provider).transcribe_image(
                b"img", "image/jpeg", UploadSourceType.IMAGE_RECEIPT
            )

    def test_empty_transcript_raises(self, fake_provider_factory):
        provider = fake_provider_factory(transcript="   ")
        with pytest.raises(ExtractionError):
            ExtractionService(provider).transcribe_image(
                b"img", "image/jpeg", UploadSourceType.IMAGE_RECEIPT
            )


def test_parse_json_response_strips_code_fences():
    assert parse_json_response('```json\n{"items": []}\n```') == {"items": []}
    with pytest.raises(ValueError):
        parse_json_response("[1, 2]")
