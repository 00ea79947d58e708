"""Tests for the inventory mutation engine and inventory API."""

from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from pantry_ingest.config import Settings
from pantry_ingest.models.audit_log import AuditLog
from pantry_ingest.models.category import Category
from pantry_ingest.models.enums import AuditActionType, InventoryAction, ResultAction
from pantry_ingest.models.inventory import InventoryItem
from pantry_ingest.schemas.inventory import UpdateRecord
from pantry_ingest.services.inventory_service import InventoryService, compute_quantity

USER = "user-1"


def _updates(*records):
    return [UpdateRecord.model_validate(record) for record in records]


def _apply(db, *records, user_id=USER):
    return InventoryService(db).apply_updates(user_id, _updates(*records))


def _item(db, name, user_id=USER):
    return (
        db.query(InventoryItem)
        .filter(InventoryItem.user_id == user_id, InventoryItem.normalized_name == name.lower())
        .one()
    )


@pytest.mark.parametrize(
    ("current", "delta", "action", "expected"),
    [
        (3, 2, InventoryAction.ADD, 5),
        (3, 10, InventoryAction.SUBTRACT, 0),
        (3, 1, InventoryAction.SUBTRACT, 2),
        (3, 7, InventoryAction.SET, 7),
        (0, 0, InventoryAction.SET, 0),
    ],
)
def test_compute_quantity(current, delta, action, expected):
    assert compute_quantity(current, delta, action) == expected


class TestApplyUpdates:
    """Tests for InventoryService.apply_updates."""

    def test_set_zero_creates_record(self, db):
        response = _apply(db, {"name": "Coffee", "quantity": 0, "action": "set"})

        assert response.success is True
        [outcome] = response.outcomes
        assert outcome.result_action == ResultAction.CREATED
        assert outcome.quantity == 0
        item = _item(db, "coffee")
        assert item.quantity == 0
        assert item.unit == "unit"
        assert item.category == "uncategorized"
        assert item.location is None
        assert item.low_stock_threshold == 1.0

    def test_invalid_action_fails_only_that_item(self, db):
        response = _apply(
            db,
            {"name": "Milk", "quantity": 1, "action": "add"},
            {"name": "Eggs", "quantity": 2, "action": "borrow"},
            {"name": "Bread", "quantity": 1, "action": "add"},
        )

        assert response.success is False
        assert response.summary.model_dump() == {"total": 3, "successful": 2, "failed": 1}
        assert [o.success for o in response.outcomes] == [True, False, True]
        assert response.outcomes[1].error == 'Invalid action "borrow". Use add, subtract, or set.'
        assert response.validation_errors == [
            'Eggs: Invalid action "borrow". Use add, subtract, or set.'
        ]
        assert {i.name for i in db.query(InventoryItem).all()} == {"Milk", "Bread"}

    def test_missing_fields_and_bad_quantity(self, db):
        response = _apply(
            db,
            {"name": "", "quantity": 1, "action": "add"},
            {"name": "Milk", "action": "add"},
            {"name": "Eggs", "quantity": -1, "action": "add"},
            {"name": "Bread", "quantity": "lots", "action": "add"},
            {"name": "Tea", "quantity": 1, "action": "add", "expiration": "whenever"},
        )
        errors = [o.error for o in response.outcomes]
        assert errors[0] == "Missing required fields: name, quantity, action"
        assert errors[1] == "Missing required fields: name, quantity, action"
        assert errors[2] == "Quantity must be a non-negative number"
        assert errors[3] == "Quantity must be a non-negative number"
        assert errors[4].startswith("Invalid expiration date")
        assert response.summary.failed == 5
        assert db.query(InventoryItem).count() == 0

    def test_store_error_is_isolated(self, db):
        real_commit = db.commit
        calls = {"count": 0}

        def flaky_commit():
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("INSERT", {}, Exception("database unavailable"))
            return real_commit()

        with patch.object(db, "commit", side_effect=flaky_commit):
            response = _apply(
                db,
                {"name": "Milk", "quantity": 1, "action": "add"},
                {"name": "Eggs", "quantity": 2, "action": "add"},
                {"name": "Bread", "quantity": 1, "action": "add"},
            )

        assert [o.success for o in response.outcomes] == [True, False, True]
        assert response.outcomes[1].error == "Failed to process update"
        assert {i.name for i in db.query(InventoryItem).all()} == {"Milk", "Bread"}

    def test_quantity_never_negative(self, db):
        _apply(db, {"name": "Eggs", "quantity": 3, "action": "set"})
        response = _apply(db, {"name": "Eggs", "quantity": 10, "action": "subtract"})

        assert response.outcomes[0].quantity == 0
        assert _item(db, "eggs").quantity == 0

    @pytest.mark.parametrize("action", ["add", "subtract", "set"])
    def test_new_item_created_with_supplied_quantity(self, db, action):
        response = _apply(db, {"name": "Butter", "quantity": 2, "action": action})
        assert response.outcomes[0].result_action == ResultAction.CREATED
        assert response.outcomes[0].quantity == 2
        assert _item(db, "butter").quantity == 2

    def test_adds_compose_within_batch(self, db):
        _apply(
            db,
            {"name": "Apples", "quantity": 2, "action": "add"},
            {"name": "Apples", "quantity": 3, "action": "add"},
        )
        _apply(db, {"name": "Pears", "quantity": 5, "action": "add"})

        assert _item(db, "apples").quantity == _item(db, "pears").quantity == 5
        assert db.query(InventoryItem).filter(InventoryItem.normalized_name == "apples").count() == 1

    def test_set_is_idempotent(self, db):
        _apply(db, {"name": "Rice", "quantity": 4, "action": "add"})
        _apply(db, {"name": "Rice", "quantity": 2, "action": "set"})
        first = _item(db, "rice").quantity
        _apply(db, {"name": "Rice", "quantity": 2, "action": "set"})
        assert _item(db, "rice").quantity == first == 2

    def test_name_matching_is_case_insensitive_and_trimmed(self, db):
        response = _apply(
            db,
            {"name": "milk", "quantity": 1, "action": "add"},
            {"name": "Milk ", "quantity": 1, "action": "add"},
            {"name": "MILK", "quantity": 1, "action": "add"},
        )
        assert [o.result_action for o in response.outcomes] == [
            ResultAction.CREATED,
            ResultAction.UPDATED,
            ResultAction.UPDATED,
        ]
        assert db.query(InventoryItem).count() == 1
        assert _item(db, "milk").quantity == 3

    def test_users_are_partitioned(self, db):
        _apply(db, {"name": "Milk", "quantity": 1, "action": "add"}, user_id="a")
        _apply(db, {"name": "Milk", "quantity": 2, "action": "add"}, user_id="b")
        assert _item(db, "milk", user_id="a").quantity == 1
        assert _item(db, "milk", user_id="b").quantity == 2

    def test_partial_update_only_touches_supplied_fields(self, db):
        _apply(
            db,
            {
                "name": "Yogurt",
                "quantity": 2,
                "action": "add",
                "unit": "cup",
                "category": "dairy",
                "location": "fridge",
                "expiration": "2025-03-01",
            },
        )
        _apply(db, {"name": "yogurt", "quantity": 1, "action": "subtract"})

        item = _item(db, "yogurt")
        assert item.quantity == 1
        assert item.unit == "cup"
        assert item.category == "dairy"
        assert item.location == "fridge"
        assert item.expiration.replace(tzinfo=None) == datetime(2025, 3, 1)

    def test_explicit_null_expiration_clears(self, db):
        _apply(db, {"name": "Yogurt", "quantity": 2, "action": "add", "expiration": "2025-03-01"})
        _apply(db, {"name": "Yogurt", "quantity": 0, "action": "add", "expiration": None})

        assert _item(db, "yogurt").expiration is None

    def test_explicit_null_on_required_field_keeps_value(self, db):
        _apply(db, {"name": "Flour", "quantity": 1, "action": "add", "unit": "bag"})
        _apply(db, {"name": "Flour", "quantity": 1, "action": "add", "unit": None, "location": None})

        item = _item(db, "flour")
        assert item.unit == "bag"
        assert item.location is None

    def test_camel_case_threshold_alias(self, db):
        _apply(db, {"name": "Oil", "quantity": 1, "action": "add", "lowStockThreshold": 2})
        assert _item(db, "oil").low_stock_threshold == 2

    def test_writes_one_audit_log_per_batch(self, db):
        response = InventoryService(db).apply_updates(
            USER,
            _updates(
                {"name": "Milk", "quantity": 1, "action": "add"},
                {"name": "Eggs", "quantity": 1, "action": "nope"},
            ),
            AuditActionType.AGENT,
        )

        [entry] = db.query(AuditLog).all()
        assert entry.action == "inventory_agent"
        assert entry.description == "Processed 1/2 inventory updates (inventory_agent)"
        assert entry.item_ids == [response.outcomes[0].id]
        assert entry.details["summary"] == {"total": 2, "successful": 1, "failed": 1}
        assert len(entry.details["results"]) == 2
        assert entry.details["requested_updates"][1]["action"] == "nope"

    def test_audit_log_truncates_large_batches(self, db):
        records = [{"name": f"Item {n}", "quantity": 1, "action": "add"} for n in range(60)]
        _apply(db, *records)

        entry = db.query(AuditLog).one()
        assert len(entry.details["results"]) == 50
        assert len(entry.details["requested_updates"]) == 50
        assert len(entry.item_ids) == 60

    def test_audit_failure_does_not_fail_batch(self, db):
        with patch(
            "pantry_ingest.services.inventory_service.AuditLog", side_effect=RuntimeError("nope")
        ):
            response = _apply(db, {"name": "Milk", "quantity": 1, "action": "add"})
        assert response.success is True
        assert _item(db, "milk").quantity == 1


class TestQueries:
    """Tests for inventory read queries."""

    def test_low_stock(self, db):
        _apply(
            db,
            {"name": "Milk", "quantity": 0, "action": "set"},
            {"name": "Eggs", "quantity": 1, "action": "set"},
            {"name": "Rice", "quantity": 5, "action": "set"},
        )
        service = InventoryService(db)

        assert {i.name for i in service.low_stock(USER)} == {"Milk", "Eggs"}
        assert {i.name for i in service.low_stock(USER, include_out_of_stock=False)} == {"Eggs"}

    def test_list_items_filters(self, db):
        _apply(
            db,
            {"name": "Milk", "quantity": 2, "action": "add", "category": "dairy"},
            {"name": "Oat Milk", "quantity": 2, "action": "add", "category": "beverages"},
            {"name": "Rice", "quantity": 2, "action": "add", "category": "pantry"},
        )
        service = InventoryService(db)

        assert {i.name for i in service.list_items(USER, search="milk")} == {"Milk", "Oat Milk"}
        assert [i.name for i in service.list_items(USER, category="pantry")] == ["Rice"]

    def test_fetch_context_respects_limit(self, db):
        _apply(db, *[{"name": f"Item {n}", "quantity": 5, "action": "add"} for n in range(5)])
        service = InventoryService(db, Settings(context_inventory_limit=3))

        context = service.fetch_context(USER)
        assert len(context["inventory"]) == 3
        assert context["low_stock"] == []
        assert context["active_lists"] == []


class TestSeedDefaultCategories:
    """Tests for chunked category seeding."""

    def test_commits_in_chunks(self, db):
        service = InventoryService(db, Settings(max_batch_operations=5))
        with patch.object(db, "commit", wraps=db.commit) as commit:
            created = service.seed_default_categories(["a", "b"])

        assert created == 16
        assert commit.call_count == 4
        assert db.query(Category).filter(Category.user_id == "a").count() == 8

    def test_skips_seeded_users(self, db):
        service = InventoryService(db)
        service.seed_default_categories(["a"])

        assert service.seed_default_categories(["a", "b", "b"]) == 8
        assert db.query(Category).count() == 16


class TestInventoryApi:
    """Tests for the inventory endpoints."""

    def test_requires_auth(self, client):
        response = client.get("/api/v1/inventory")
        assert response.status_code in (401, 403)

        response = client.get(
            "/api/v1/inventory", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    def test_update_returns_200_with_item_failures(self, client, auth_headers):
        response = client.post(
            "/api/v1/inventory/update",
            headers=auth_headers,
            json={
                "updates": [
                    {"name": "Milk", "quantity": 2, "action": "add", "unit": "gallon"},
                    {"name": "Eggs", "quantity": 2, "action": "juggle"},
                ]
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["summary"] == {"total": 2, "successful": 1, "failed": 1}
        assert data["outcomes"][0]["result_action"] == "created"
        assert data["outcomes"][0]["message"] == "Added Milk: 2 gallon"

        listing = client.get("/api/v1/inventory", headers=auth_headers).json()
        assert [item["name"] for item in listing] == ["Milk"]

        logs = client.get("/api/v1/inventory/audit-logs", headers=auth_headers).json()
        assert len(logs) == 1
        assert logs[0]["action"] == "inventory_update"

    def test_update_rejects_empty_batch(self, client, auth_headers):
        response = client.post("/api/v1/inventory/update", headers=auth_headers, json={"updates": []})
        assert response.status_code == 400

    def test_low_stock_endpoint(self, client, auth_headers):
        client.post(
            "/api/v1/inventory/update",
            headers=auth_headers,
            json={"updates": [{"name": "Milk", "quantity": 0, "action": "set"}]},
        )
        response = client.get("/api/v1/inventory/low-stock", headers=auth_headers)
        assert response.status_code == 200
        assert [item["name"] for item in response.json()] == ["Milk"]

    def test_parse_text_uses_fallback_and_records_event(self, client, auth_headers):
        response = client.post(
            "/api/v1/inventory/parse",
            headers=auth_headers,
            json={"text": "bought 2 gallons of milk and used 3 eggs"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["used_fallback"] is True
        assert data["needs_review"] is True
        assert [u["name"] for u in data["updates"]] == ["Milk", "Eggs"]

        metrics = client.get("/api/v1/metrics/global", headers=auth_headers).json()
        assert metrics["total"] == 1
        assert metrics["fallback_count"] == 1

    def test_parse_requires_exactly_one_input(self, client, auth_headers):
        assert client.post("/api/v1/inventory/parse", headers=auth_headers, json={}).status_code == 400
        response = client.post(
            "/api/v1/inventory/parse",
            headers=auth_headers,
            json={"text": "milk", "image": "aGVsbG8="},
        )
        assert response.status_code == 400

    def test_parse_rejects_bad_base64(self, client, auth_headers):
        response = client.post(
            "/api/v1/inventory/parse", headers=auth_headers, json={"image": "***not base64***"}
        )
        assert response.status_code == 400

    def test_parse_image_without_provider(self, client, auth_headers):
        response = client.post(
            "/api/v1/inventory/parse",
            headers=auth_headers,
            json={"image": "aGVsbG8=", "image_type": "list"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["updates"] == []
        assert data["needs_review"] is True
        assert data["warnings"] == "No extraction provider configured"
