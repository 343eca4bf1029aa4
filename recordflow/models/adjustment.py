"""
RecordFlow - Resource Adjustment Request Model

A request to remove the resource-hours allocation from a record, plus its
threaded comments. At most one request exists per record; an approved
request zeroes the allocation and a reversal restores it from
record_snapshot.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Numeric, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from recordflow.models.base import BaseModel


class AdjustmentStatus(str, Enum):
    """Status of a resource-adjustment request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ResourceAdjustmentRequest(BaseModel):
    """Request to zero a record's allocated hours."""

    __tablename__ = "resource_adjustment_requests"

    # Not a foreign key: requests outlive deleted records so they can be cleaned up
    record_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
    )
    reviewer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    current_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    hours_to_remove: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[AdjustmentStatus] = mapped_column(
        SQLEnum(AdjustmentStatus, values_callable=lambda x: [e.value for e in x]),
        default=AdjustmentStatus.PENDING,
        nullable=False,
        index=True,
    )

    # ===========================================
    # DECISION
    # ===========================================
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Record fields as they were just before approval overwrote them
    record_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # ===========================================
    # REVERSAL
    # ===========================================
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ResourceAdjustmentRequest(id={self.id}, record_id={self.record_id}, status={self.status})>"


class AdjustmentComment(BaseModel):
    """Discussion on a request. Replies point at their parent comment."""

    __tablename__ = "adjustment_request_comments"

    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("resource_adjustment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
    )
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("adjustment_request_comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    # Internal notes are hidden from the requester
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<AdjustmentComment(id={self.id}, request_id={self.request_id})>"
