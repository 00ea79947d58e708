"""SQLAlchemy models."""

from pantry_ingest.models.audit_log import AuditLog
from pantry_ingest.models.category import Category
from pantry_ingest.models.grocery_list import GroceryList
from pantry_ingest.models.ingestion_job import IngestionJob, ToolInvocation
from pantry_ingest.models.interaction import AgentInteraction, AgentMetricsSnapshot
from pantry_ingest.models.inventory import InventoryItem
from pantry_ingest.models.upload import Upload, UploadJob

__all__ = [
    "InventoryItem",
    "AuditLog",
    "Category",
    "GroceryList",
    "Upload",
    "UploadJob",
    "IngestionJob",
    "ToolInvocation",
    "AgentInteraction",
    "AgentMetricsSnapshot",
]
