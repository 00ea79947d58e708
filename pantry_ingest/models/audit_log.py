"""Audit log model recording each batch of automated inventory changes."""

from sqlalchemy import JSON, Column, Integer, String

from pantry_ingest.database import Base
from pantry_ingest.models.mixins import TimestampMixin


class AuditLog(Base, TimestampMixin):
    """One entry per applied batch of inventory updates."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    action = Column(String(30), nullable=False)  # inventory_update | inventory_apply | inventory_agent
    item_ids = Column(JSON, nullable=False, default=list)  # Successfully changed record ids
    description = Column(String(500), nullable=False)

    # {summary, validation_errors, results[:50], requested_updates[:50]}
    details = Column(JSON, nullable=True)
