"""Normalization and validation of extracted items.

``validate_items`` is pure and idempotent: running it on its own output
returns the same items. It never raises for a well-formed ``ExtractedItem``.
"""

import logging
import math
from datetime import UTC, date, datetime, time
from typing import Any

from pydantic import ValidationError

from pantry_ingest.schemas.extraction import ExtractedItem

logger = logging.getLogger(__name__)

UNIT_SYNONYMS: dict[str, str] = {
    "gallon": "gallon",
    "gallons": "gallon",
    "gal": "gallon",
    "loaf": "loaf",
    "loaves": "loaf",
    "dozen": "dozen",
    "doz": "dozen",
    "count": "count",
    "each": "count",
    "piece": "count",
    "pieces": "count",
    "item": "count",
    "items": "count",
    "pound": "pound",
    "pounds": "pound",
    "lb": "pound",
    "lbs": "pound",
    "bag": "bag",
    "bags": "bag",
    "bottle": "bottle",
    "bottles": "bottle",
    "can": "can",
    "cans": "can",
    "box": "box",
    "boxes": "box",
    "ounce": "ounce",
    "ounces": "ounce",
    "oz": "ounce",
}

CATEGORIES = frozenset(
    {"dairy", "produce", "meat", "pantry", "frozen", "beverages", "snacks", "bakery"}
)
DEFAULT_CATEGORY = "uncategorized"
DEFAULT_UNIT = "count"

_MISSING = object()


def normalize_unit(unit: str | None) -> str:
    """Map a unit to its canonical spelling; unknown units are lower-cased."""
    if not unit or not unit.strip():
        return DEFAULT_UNIT
    key = unit.strip().lower()
    return UNIT_SYNONYMS.get(key, key)


def normalize_category(category: str | None) -> str:
    """Map a category into the closed vocabulary."""
    if not category:
        return DEFAULT_CATEGORY
    key = category.strip().lower()
    return key if key in CATEGORIES else DEFAULT_CATEGORY


def normalize_name(name: str) -> str:
    """Trim and title-case a display name ("whole MILK" -> "Whole Milk")."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.split())


def clamp(value: float, low: float, high: float | None = None) -> float:
    """Clamp ``value`` into range, mapping NaN to ``low``."""
    if math.isnan(value):
        return low
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def parse_expiration(value: Any) -> datetime | None | object:
    """Parse an expiration value into an aware UTC datetime.

    Returns ``None`` for an explicit null or empty string, and the module
    sentinel ``_MISSING`` when the value cannot be parsed.

    Accepted inputs:
    - ``datetime`` (naive values are taken as UTC) and ``date``
    - ISO 8601 strings, including a trailing ``Z``
    - epoch milliseconds as int or float
    - ``{"seconds": ..., "nanoseconds": ...}`` timestamp maps
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, int | float):
        if not math.isfinite(value):
            return _MISSING
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return _MISSING
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if not isinstance(seconds, int | float) or isinstance(seconds, bool):
            return _MISSING
        try:
            return datetime.fromtimestamp(seconds + nanos / 1e9, tz=UTC)
        except (OverflowError, OSError, ValueError, TypeError):
            return _MISSING
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return _MISSING
        return parsed.astimezone(UTC) if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return _MISSING


def coerce_expiration(value: Any) -> tuple[bool, datetime | None]:
    """Parse an expiration, returning ``(ok, value)``."""
    parsed = parse_expiration(value)
    if parsed is _MISSING:
        return False, None
    return True, parsed  # type: ignore[return-value]


def validate_item(item: ExtractedItem) -> ExtractedItem:
    """Normalize a single extracted item."""
    data = item.model_dump(exclude_unset=True)

    data["name"] = normalize_name(item.name)
    data["quantity"] = clamp(float(item.quantity), 0.0)
    if math.isinf(data["quantity"]):
        data["quantity"] = 0.0
    data["action"] = item.action
    data["confidence"] = clamp(float(item.confidence), 0.0, 1.0)

    # Unit and category are only written when the source named one
    if item.unit is not None and item.unit.strip():
        data["unit"] = normalize_unit(item.unit)
    else:
        data.pop("unit", None)
    if item.category is not None and item.category.strip():
        data["category"] = normalize_category(item.category)
    else:
        data.pop("category", None)
    if item.location is not None:
        data["location"] = item.location.strip() or None
    if item.brand is not None:
        data["brand"] = item.brand.strip() or None
    if item.notes is not None:
        data["notes"] = item.notes.strip() or None

    if item.expiration_provided:
        ok, parsed = coerce_expiration(item.expiration)
        if ok:
            data["expiration"] = parsed
        else:
            logger.warning(f"Dropping unparseable expiration for {item.name!r}: {item.expiration!r}")
            data.pop("expiration", None)

    return ExtractedItem.model_validate(data)


def validate_items(items: list[ExtractedItem]) -> list[ExtractedItem]:
    """Normalize a list of extracted items, preserving order.

    Items that cannot be normalized (a name that is only whitespace) are
    dropped.
    """
    validated = []
    for item in items:
        try:
            validated.append(validate_item(item))
        except ValidationError as e:
            logger.warning(f"Dropping invalid extracted item {item.name!r}: {e}")
    return validated
