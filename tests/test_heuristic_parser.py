"""Tests for the deterministic fallback parser."""

import pytest

from pantry_ingest.services.heuristic_parser import FallbackParser


def test_mixed_actions_across_clauses():
    result = FallbackParser.parse("bought 2 gallons of milk and used 3 eggs")

    assert [(i.name, i.quantity, i.unit, i.action) for i in result.items] == [
        ("Milk", 2.0, "gallon", "add"),
        ("Eggs", 3.0, "dozen", "subtract"),
    ]
    assert result.needs_review is True
    assert result.used_fallback is True
    assert result.overall_confidence == 0.6
    assert all(item.confidence == 0.6 for item in result.items)


def test_possession_words_set_quantity():
    result = FallbackParser.parse("I have 2 loaves of bread left")
    [item] = result.items
    assert item.name == "Bread"
    assert item.action == "set"
    assert item.quantity == 2.0
    assert item.unit == "loaf"


def test_whole_text_action_is_clause_default():
    result = FallbackParser.parse("picked up coffee, bananas and chicken")
    assert [(i.name, i.action) for i in result.items] == [
        ("Coffee", "add"),
        ("Bananas", "add"),
        ("Chicken", "add"),
    ]


@pytest.mark.parametrize(
    ("text", "name", "quantity"),
    [
        ("bought a banana", "Bananas", 1.0),
        ("bought 6 bananas", "Bananas", 6.0),
        ("bought a loaf", "Bread", 1.0),
        ("got 2 loaf", "Bread", 2.0),
    ],
)
def test_keyword_aliases(text, name, quantity):
    [item] = FallbackParser.parse(text).items
    assert (item.name, item.quantity) == (name, quantity)


def test_quantity_defaults_to_one():
    [item] = FallbackParser.parse("got some milk").items
    assert item.quantity == 1.0


def test_no_match_has_low_confidence():
    result = FallbackParser.parse("went for a walk")
    assert result.items == []
    assert result.overall_confidence == 0.2
    assert result.needs_review is True


def test_same_item_is_reported_once():
    result = FallbackParser.parse("bought milk and then more milk")
    assert [i.name for i in result.items] == ["Milk"]


@pytest.mark.parametrize(
    "text",
    ["", "   ", ",,,;;", "and and then", "1234567890" * 50, "🥚🥛", "milk" * 1000, "\x00\n\t"],
)
def test_never_raises(text):
    result = FallbackParser.parse(text)
    assert result.needs_review is True
    assert 0.0 <= result.overall_confidence <= 1.0


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("bought milk", "add"),
        ("I ate the bread", "subtract"),
        ("finished the coffee", "subtract"),
        ("2 eggs remaining", "set"),
        ("milk", "add"),
    ],
)
def test_detect_action(text, expected):
    assert FallbackParser.detect_action(text) == expected
