"""Deterministic keyword parsing for grocery text - no model calls.

Used whenever the extraction provider is missing, fails, times out or
returns something unusable. The parser is total: any string produces a
result and nothing here raises.
"""

import re
from dataclasses import dataclass

from pantry_ingest.schemas.extraction import ExtractedItem, ExtractionResult, ItemAction

FALLBACK_ITEM_CONFIDENCE = 0.6
FALLBACK_MATCHED_CONFIDENCE = 0.6
FALLBACK_EMPTY_CONFIDENCE = 0.2


@dataclass(frozen=True)
class KeywordRule:
    """Canonical item recognized by any of its keywords."""

    keywords: tuple[str, ...]
    name: str
    unit: str
    category: str


KEYWORD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(("milk",), "Milk", "gallon", "dairy"),
    KeywordRule(("bread", "loaf"), "Bread", "loaf", "bakery"),
    KeywordRule(("eggs",), "Eggs", "dozen", "dairy"),
    KeywordRule(("banana", "bananas"), "Bananas", "count", "produce"),
    KeywordRule(("coffee",), "Coffee", "bag", "beverages"),
    KeywordRule(("chicken",), "Chicken", "pound", "meat"),
)

# Checked in order: a clause that mentions both "bought" and "have" is an add
ACTION_PATTERNS: tuple[tuple[ItemAction, re.Pattern[str]], ...] = (
    ("add", re.compile(r"\b(?:bought|got|picked\s+up)\b", re.I)),
    ("subtract", re.compile(r"\b(?:used|ate|finished)\b", re.I)),
    ("set", re.compile(r"\b(?:have|left|remaining)\b", re.I)),
)

CLAUSE_SPLIT = re.compile(r"\s*(?:,|;|\band\b|\bthen\b)\s*", re.I)


class FallbackParser:
    """Parse grocery text using a fixed keyword table."""

    @staticmethod
    def detect_action(text: str, default: ItemAction = "add") -> ItemAction:
        """Infer the action from acquisition, consumption or possession words.

        Examples:
        - "bought milk" -> add
        - "used 3 eggs" -> subtract
        - "have 2 loaves left" -> set
        - "milk" -> default
        """
        for action, pattern in ACTION_PATTERNS:
            if pattern.search(text):
                return action
        return default

    @staticmethod
    def split_clauses(text: str) -> list[str]:
        """Split text on commas, semicolons, "and" and "then"."""
        return [clause for clause in CLAUSE_SPLIT.split(text) if clause and clause.strip()]

    @staticmethod
    def match_keyword(text: str, rule: KeywordRule) -> str | None:
        """Return the first of the rule's keywords found in ``text`` as a whole word."""
        for keyword in rule.keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", text, flags=re.I):
                return keyword
        return None

    @staticmethod
    def extract_quantity(text: str, keyword: str) -> float:
        """Read ``<digits> [<unit word> [of]] <keyword>``, defaulting to 1.

        Examples:
        - "2 gallons of milk" -> 2
        - "3 eggs" -> 3
        - "some bread" -> 1
        """
        match = re.search(
            rf"(\d+)\s*(?:\w+\s+(?:of\s+)?)?{re.escape(keyword)}", text, flags=re.I
        )
        if match:
            return float(match.group(1))
        return 1.0

    @classmethod
    def parse(cls, text: str) -> ExtractionResult:
        """Parse text into items with fixed confidence.

        The whole-text action is the default for each clause, and a clause
        that carries its own action word overrides it, so "bought 2 gallons
        of milk and used 3 eggs" yields one add and one subtract.
        """
        text = text if isinstance(text, str) else ""
        default_action = cls.detect_action(text)
        clauses = cls.split_clauses(text) or [text]

        items: list[ExtractedItem] = []
        seen: set[str] = set()
        for clause in clauses:
            action = cls.detect_action(clause, default=default_action)
            for rule in KEYWORD_RULES:
                if rule.name in seen:
                    continue
                keyword = cls.match_keyword(clause, rule)
                if keyword is None:
                    continue
                seen.add(rule.name)
                items.append(
                    ExtractedItem(
                        name=rule.name,
                        quantity=cls.extract_quantity(clause, keyword),
                        unit=rule.unit,
                        action=action,
                        category=rule.category,
                        confidence=FALLBACK_ITEM_CONFIDENCE,
                    )
                )

        return ExtractionResult(
            items=items,
            overall_confidence=FALLBACK_MATCHED_CONFIDENCE if items else FALLBACK_EMPTY_CONFIDENCE,
            original_text=text,
            needs_review=True,
            used_fallback=True,
            provider="fallback",
        )
