"""Enums for model fields."""

from enum import Enum


class InventoryAction(str, Enum):
    """Mutation applied to an inventory record's quantity."""

    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class ResultAction(str, Enum):
    """What the mutation engine did with an update."""

    CREATED = "created"
    UPDATED = "updated"


class AuditActionType(str, Enum):
    """Audit log action type for a batch of inventory updates."""

    UPDATE = "inventory_update"
    APPLY = "inventory_apply"
    AGENT = "inventory_agent"


class UploadStatus(str, Enum):
    """Lifecycle of an uploaded file."""

    AWAITING_UPLOAD = "awaiting_upload"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)


class UploadJobStatus(str, Enum):
    """Lifecycle of the blob-processing job attached to an upload."""

    QUEUED = "queued"
    RECEIVED = "received"
    AWAITING_PARSER = "awaiting_parser"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadSourceType(str, Enum):
    """Kind of content an upload carries."""

    TEXT = "text"
    PDF = "pdf"
    IMAGE_RECEIPT = "image_receipt"
    IMAGE_LIST = "image_list"
    UNKNOWN = "unknown"

    @property
    def is_image(self) -> bool:
        """Check if the content must go through the vision path."""
        return self in (UploadSourceType.IMAGE_RECEIPT, UploadSourceType.IMAGE_LIST)


class IngestionJobStatus(str, Enum):
    """Externally observable state of an ingestion job."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ToolInvocationStatus(str, Enum):
    """Two-phase status of a recorded tool call."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
