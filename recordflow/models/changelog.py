"""
RecordFlow - Record Changelog Model

Field-level, append-only history of edits to a record.
"""

import uuid
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from recordflow.database import Base
from recordflow.models.base import utcnow


class ChangelogAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VERSION_CREATE = "version_create"


class ChangeType(str, enum.Enum):
    """Category of a field change, inferred from the field name."""
    FIELD_UPDATE = "field_update"
    CONTENT_EDIT = "content_edit"
    STATUS_CHANGE = "status_change"
    VERSION_CREATE = "version_create"


class ChangelogEntry(Base):
    """One changed field (or lifecycle event) on a record."""

    __tablename__ = "record_changelog"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    record_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(30), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    previous_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    change_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    diff_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    # Record version and parent at the time of the change
    version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    parent_version_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<ChangelogEntry(record_id={self.record_id}, field={self.field_name}, type={self.change_type})>"
