"""Inventory schemas."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from pantry_ingest.models.enums import AuditActionType, ResultAction
from pantry_ingest.schemas.extraction import EXPIRATION_ALIASES


class UpdateRecord(BaseModel):
    """A requested inventory change.

    Loosely typed on purpose: a bad action or quantity fails only its own
    item, so every field that can be wrong is checked by the mutation
    engine rather than rejected at the request boundary.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    quantity: float | str | None = None
    action: str | None = None
    unit: str | None = None
    category: str | None = None
    location: str | None = None
    brand: str | None = None
    notes: str | None = None
    low_stock_threshold: float | None = Field(
        default=None, validation_alias=AliasChoices("low_stock_threshold", "lowStockThreshold")
    )
    expiration: Any = Field(default=None, validation_alias=EXPIRATION_ALIASES)

    def is_set(self, field: str) -> bool:
        """Check if the caller supplied ``field`` (even as null)."""
        return field in self.model_fields_set


class ApplyOutcome(BaseModel):
    """Result of applying one update."""

    id: int | None = None
    name: str
    success: bool
    result_action: ResultAction | None = None
    quantity: float | None = None
    expiration: datetime | None = None
    message: str | None = None
    error: str | None = None


class ApplySummary(BaseModel):
    """Counts for a batch."""

    total: int
    successful: int
    failed: int


class ApplyUpdatesRequest(BaseModel):
    """Batch of inventory updates."""

    updates: list[UpdateRecord]
    action_type: AuditActionType = AuditActionType.UPDATE


class ApplyUpdatesResponse(BaseModel):
    """Batch result; business failures are reported per item."""

    success: bool
    outcomes: list[ApplyOutcome]
    summary: ApplySummary
    validation_errors: list[str]


class InventoryItemResponse(BaseModel):
    """Inventory record response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    name: str
    quantity: float
    unit: str
    category: str
    location: str | None
    brand: str | None
    low_stock_threshold: float
    expiration: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class AuditLogResponse(BaseModel):
    """Audit log entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    item_ids: list[int]
    description: str
    details: dict | None
    created_at: datetime
