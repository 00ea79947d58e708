"""Grocery list model, read as context by the ingestion agent."""

from sqlalchemy import JSON, Column, Integer, String, Text

from pantry_ingest.database import Base
from pantry_ingest.models.mixins import TimestampMixin


class GroceryList(Base, TimestampMixin):
    """A shopping list with embedded items."""

    __tablename__ = "grocery_lists"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="Shopping List")
    status = Column(String(20), nullable=False, default="active", index=True)  # active, archived
    notes = Column(Text, nullable=True)

    # [{name, quantity, unit, category, is_checked, notes}]
    items = Column(JSON, nullable=False, default=list)
