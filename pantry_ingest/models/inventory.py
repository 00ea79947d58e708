"""Inventory record model for tracking what a user has at home."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pantry_ingest.database import Base
from pantry_ingest.models.mixins import TimestampMixin


class InventoryItem(Base, TimestampMixin):
    """A single pantry record, unique per user by case-insensitive name."""

    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("user_id", "normalized_name", name="uq_inventory_user_normalized_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # Partition key: a user id, or a household id when storage is shared
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # Display name
    normalized_name: Mapped[str] = mapped_column(String(255), nullable=False)  # Lowercase, trimmed
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit: Mapped[str] = mapped_column(String(50), nullable=False, default="unit")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="uncategorized")
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(255), nullable=True)
    low_stock_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    expiration: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_low_stock(self) -> bool:
        """Check if the quantity has reached the low-stock threshold."""
        return self.quantity <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<InventoryItem(id={self.id}, user_id={self.user_id}, name={self.name})>"


def normalize_name(name: str) -> str:
    """Matching key for inventory names (case-insensitive, trimmed)."""
    return name.strip().lower()
