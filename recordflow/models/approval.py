"""
RecordFlow - Approval Models

Approval stages (reference data), amount-based stage selection rules and
the per-record approval rows that drive the review workflow.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recordflow.models.base import BaseModel


class ApprovalStatus(str, Enum):
    """Status of a single approval row. Leaves PENDING at most once."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class ApprovalAction(str, Enum):
    """Actions an approver can take on a pending approval."""
    APPROVE = "approve"
    REJECT = "reject"
    SKIP = "skip"

    @property
    def resulting_status(self) -> ApprovalStatus:
        return {
            ApprovalAction.APPROVE: ApprovalStatus.APPROVED,
            ApprovalAction.REJECT: ApprovalStatus.REJECTED,
            ApprovalAction.SKIP: ApprovalStatus.SKIPPED,
        }[self]


class ApprovalStage(BaseModel):
    """A named step in the review workflow."""

    __tablename__ = "approval_stages"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    requires_comment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_approve: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    assigned_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<ApprovalStage(name={self.name!r}, sort_order={self.sort_order})>"


class ApprovalRule(BaseModel):
    """
    Selects a stage for a workflow when the record's amount qualifies.

    condition_value for amount rules is {"min_amount": <number>}.
    """

    __tablename__ = "approval_rules"

    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    condition_type: Mapped[str] = mapped_column(String(50), nullable=False, default="amount")
    condition_value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("approval_stages.id", ondelete="CASCADE"),
        nullable=False,
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    stage: Mapped["ApprovalStage"] = relationship(lazy="selectin")


class ApprovalRecord(BaseModel):
    """One approval row per (record, stage) in a started workflow."""

    __tablename__ = "record_approvals"
    __table_args__ = (
        UniqueConstraint("record_id", "stage_id", name="uq_record_approvals_record_stage"),
    )

    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("approval_stages.id"),
        nullable=False,
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus, values_callable=lambda x: [e.value for e in x]),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Exactly one of these is set once the row leaves PENDING
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    skipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Bumped on every transition
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    stage: Mapped["ApprovalStage"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<ApprovalRecord(id={self.id}, record_id={self.record_id}, status={self.status})>"
