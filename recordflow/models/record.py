"""
RecordFlow - Review Record Model

The business document that moves through review. Records are versioned:
a new version points at its predecessor through parent_id.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from recordflow.models.base import BaseModel


class RecordStatus(str, Enum):
    """Lifecycle status of a record."""
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewRecord(BaseModel):
    """A versioned business record subject to review."""

    __tablename__ = "records"

    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    opportunity_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )

    status: Mapped[RecordStatus] = mapped_column(
        SQLEnum(RecordStatus, values_callable=lambda x: [e.value for e in x]),
        default=RecordStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # ===========================================
    # RESOURCE ALLOCATION
    # ===========================================
    allocated_hours: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0"),
        nullable=False,
    )
    requirement_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requirement_disabled_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    requirement_disabled_approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
    )
    hours_removed: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # ===========================================
    # VERSIONING / OWNERSHIP
    # ===========================================
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("records.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_latest: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Logically retired; hidden records may have their adjustment requests deleted
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<ReviewRecord(id={self.id}, title={self.title!r}, status={self.status})>"
