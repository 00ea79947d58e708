"""Category model for a user's default inventory categories."""

from sqlalchemy import Column, Integer, String, UniqueConstraint

from pantry_ingest.database import Base
from pantry_ingest.models.mixins import TimestampMixin


class Category(Base, TimestampMixin):
    """Inventory category shown to the user."""

    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_category_user_slug"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    slug = Column(String(50), nullable=False)  # "dairy", "produce", ...
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
