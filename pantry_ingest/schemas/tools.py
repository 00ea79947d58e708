"""Argument and result schemas for the agent's callable tools.

Each tool has its own argument model, validated when the controller calls
it, and its own result model. Anything that fails validation is returned
to the controller as a ``ToolError`` instead of reaching service code.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from pantry_ingest.models.enums import AuditActionType
from pantry_ingest.schemas.extraction import EXPIRATION_ALIASES, ExtractedItem


class ToolError(BaseModel):
    """Structured failure returned to the controller."""

    error: str


class FetchUserContextArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include_lists: bool = Field(
        False, description="Include active grocery lists for additional context"
    )


class ContextInventoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    quantity: float
    unit: str
    category: str
    location: str | None
    brand: str | None
    low_stock_threshold: float
    expiration: datetime | None
    notes: str | None


class ContextGroceryList(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    status: str
    notes: str | None
    items: list[dict]


class FetchUserContextResult(BaseModel):
    inventory: list[ContextInventoryItem]
    low_stock: list[ContextInventoryItem]
    active_lists: list[ContextGroceryList]


class ParseGroceryTextArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(
        ..., min_length=1, max_length=50000, description="Natural language grocery description"
    )


class ParseGroceryTextResult(BaseModel):
    items: list[ExtractedItem]
    confidence: float
    needs_review: bool
    used_fallback: bool
    original_text: str
    warnings: str | None = None

    @field_serializer("items")
    def _dump_items(self, items: list[ExtractedItem]) -> list[dict]:
        # Unset expirations stay absent rather than null
        return [item.model_dump(mode="json", exclude_unset=True) for item in items]


class ToolInventoryUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., min_length=1)
    quantity: float = Field(..., ge=0)
    action: Literal["add", "subtract", "set"]
    unit: str | None = None
    category: str | None = None
    location: str | None = None
    brand: str | None = None
    notes: str | None = None
    expiration: str | None = Field(
        default=None,
        validation_alias=EXPIRATION_ALIASES,
        description="ISO 8601 date; null clears a stored expiration",
    )
    low_stock_threshold: float | None = Field(None, ge=0)


class ApplyInventoryUpdatesArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    updates: list[ToolInventoryUpdate] = Field(..., min_length=1)
    action_type: AuditActionType | None = Field(None, description="Audit log action type")
