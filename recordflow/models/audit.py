"""
RecordFlow - Audit Log Model

Immutable, append-only log of workflow decisions and status changes.

Entries reference records, approvals and adjustment requests by id only,
so the log survives deletion of the rows it describes.
This table should have no UPDATE or DELETE permissions.
"""

import uuid
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from recordflow.database import Base
from recordflow.models.base import utcnow


class AuditAction(str, enum.Enum):
    """Audit action types."""
    APPROVE = "approve"
    REJECT = "reject"
    SKIP = "skip"
    COMMENT_ADDED = "comment_added"
    WORKFLOW_STARTED = "workflow_started"
    STATUS_CHANGE = "status_change"
    # Resource-adjustment workflow
    REQUEST_CREATED = "request_created"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_REVERSED = "request_reversed"
    REQUEST_DELETED = "request_deleted"


class AuditLogEntry(Base):
    """A single immutable audit entry."""

    __tablename__ = "audit_log_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    record_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    approval_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    # System actions may not have a user
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    # Stored as plain strings so new actions never need a migration
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    previous_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry(id={self.id}, action={self.action}, record_id={self.record_id})>"
