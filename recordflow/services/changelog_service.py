"""
RecordFlow - Changelog Service

Field-level change history for records.

The diff helpers at the top of the module are pure and have no I/O.
ChangelogService persists a diff as one batch per save, tagged with the
record's version and parent id. Writes are best effort: a failure is
logged and an empty list is returned.
"""

import csv
import io
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recordflow.models.changelog import ChangeType, ChangelogAction, ChangelogEntry
from recordflow.models.record import ReviewRecord
from recordflow.services.directory import UserDirectory

logger = logging.getLogger(__name__)


# System fields never tracked in the changelog
EXCLUDED_FIELDS = frozenset({
    "id",
    "created_at",
    "updated_at",
    "is_latest",
    "parent_id",
    "version",
    "author_id",
})

FIELD_DISPLAY_NAMES = {
    "title": "Title",
    "client_name": "Client Name",
    "content": "Content",
    "status": "Status",
    "opportunity_amount": "Opportunity Amount",
    "allocated_hours": "Allocated Hours",
    "requirement_disabled": "Requirement Disabled",
    "hours_removed": "Hours Removed",
    "is_hidden": "Hidden",
}

CHANGELOG_CSV_HEADERS = [
    "Date",
    "User",
    "Action",
    "Field",
    "Change Type",
    "Previous Value",
    "New Value",
    "Diff Summary",
    "Version",
]


# ===========================================
# PURE DIFF HELPERS
# ===========================================

@dataclass(frozen=True)
class FieldChange:
    """One changed field between two snapshots."""
    field_name: str
    previous_value: str
    new_value: str
    change_type: ChangeType
    diff_summary: str


def value_to_string(value: Any) -> str:
    """Stringify a field value the way it is stored in the changelog."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def infer_change_type(field_name: str) -> ChangeType:
    if field_name == "status":
        return ChangeType.STATUS_CHANGE
    if field_name.startswith("custom_") or "content" in field_name:
        return ChangeType.CONTENT_EDIT
    return ChangeType.FIELD_UPDATE


def field_display_name(field_name: str) -> str:
    """Human-readable field name; snake_case falls back to Title Case."""
    if field_name in FIELD_DISPLAY_NAMES:
        return FIELD_DISPLAY_NAMES[field_name]
    return " ".join(part.capitalize() for part in field_name.split("_") if part)


def generate_diff_summary(
    field_name: str,
    previous_value: str,
    new_value: str,
    change_type: ChangeType,
) -> str:
    """Templated one-line description of a change."""
    name = field_display_name(field_name)

    if change_type == ChangeType.STATUS_CHANGE:
        return f'Status changed from "{previous_value or "None"}" to "{new_value or "None"}"'

    if change_type == ChangeType.CONTENT_EDIT:
        if previous_value and new_value:
            direction = "expanded" if len(new_value) > len(previous_value) else "shortened"
            return f"{name} content {direction} ({len(previous_value)} → {len(new_value)} characters)"
        if new_value:
            return f"{name} content added ({len(new_value)} characters)"
        if previous_value:
            return f"{name} content removed"
        return f"{name} content updated"

    if previous_value and new_value:
        return f'{name} changed from "{previous_value}" to "{new_value}"'
    if new_value:
        return f'{name} set to "{new_value}"'
    if previous_value:
        return f'{name} cleared (was "{previous_value}")'
    return f"{name} updated"


def compute_changes(previous: Mapping[str, Any], new: Mapping[str, Any]) -> List[FieldChange]:
    """
    Diff two record snapshots.

    Considers every key present in either snapshot except EXCLUDED_FIELDS,
    and reports a field only when its stringified value differs. The result
    is sorted by field name so repeated diffs are stable.
    """
    changes: List[FieldChange] = []
    for field_name in sorted(set(previous) | set(new)):
        if field_name in EXCLUDED_FIELDS:
            continue
        previous_str = value_to_string(previous.get(field_name))
        new_str = value_to_string(new.get(field_name))
        if previous_str == new_str:
            continue
        change_type = infer_change_type(field_name)
        changes.append(FieldChange(
            field_name=field_name,
            previous_value=previous_str,
            new_value=new_str,
            change_type=change_type,
            diff_summary=generate_diff_summary(field_name, previous_str, new_str, change_type),
        ))
    return changes


def record_snapshot(record: ReviewRecord) -> Dict[str, Any]:
    """Column values of a record keyed by attribute name."""
    mapper = sa_inspect(type(record))
    return {column.key: getattr(record, column.key) for column in mapper.column_attrs}


@dataclass
class ChangelogFilters:
    change_type: Optional[str] = None
    field_name: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ===========================================
# SERVICE
# ===========================================

class ChangelogService:
    """Service for writing and reading a record's changelog."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _record_version(self, session: AsyncSession, record_id: uuid.UUID):
        result = await session.execute(
            select(ReviewRecord.version, ReviewRecord.parent_id).where(ReviewRecord.id == record_id)
        )
        row = result.first()
        if row is None:
            return 1, None
        return row.version or 1, row.parent_id

    async def _write(self, label: str, record_id: uuid.UUID, build) -> List[ChangelogEntry]:
        try:
            async with self.session_factory() as session:
                version, parent_id = await self._record_version(session, record_id)
                entries = build(version, parent_id)
                if not entries:
                    return []
                session.add_all(entries)
                await session.commit()
                return entries
        except Exception as e:
            logger.error(f"Changelog {label} failed for record {record_id}: {e}", exc_info=True)
            return []

    async def log_field_changes(
        self,
        record_id: uuid.UUID,
        previous: Mapping[str, Any],
        new: Mapping[str, Any],
        user_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ChangelogEntry]:
        """
        Diff two snapshots and write one entry per changed field.

        Returns:
            The written entries; empty when nothing changed or the write failed
        """
        changes = compute_changes(previous, new)
        if not changes:
            return []

        def build(version: int, parent_id: Optional[uuid.UUID]) -> List[ChangelogEntry]:
            return [
                ChangelogEntry(
                    record_id=record_id,
                    user_id=user_id,
                    action=ChangelogAction.UPDATE.value,
                    field_name=change.field_name,
                    previous_value=change.previous_value,
                    new_value=change.new_value,
                    change_type=change.change_type.value,
                    diff_summary=change.diff_summary,
                    event_metadata=metadata or {},
                    version=version,
                    parent_version_id=parent_id,
                )
                for change in changes
            ]

        entries = await self._write("field update", record_id, build)
        if entries:
            logger.info(f"Logged {len(entries)} field changes for record {record_id}")
        return entries

    async def log_record_creation(
        self,
        record_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ChangelogEntry]:
        def build(version: int, parent_id: Optional[uuid.UUID]) -> List[ChangelogEntry]:
            return [ChangelogEntry(
                record_id=record_id,
                user_id=user_id,
                action=ChangelogAction.CREATE.value,
                change_type=ChangeType.FIELD_UPDATE.value,
                diff_summary="Record created",
                event_metadata=metadata or {},
                version=version,
                parent_version_id=parent_id,
            )]

        return await self._write("creation", record_id, build)

    async def log_version_creation(
        self,
        record_id: uuid.UUID,
        parent_record_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ChangelogEntry]:
        def build(version: int, parent_id: Optional[uuid.UUID]) -> List[ChangelogEntry]:
            return [ChangelogEntry(
                record_id=record_id,
                user_id=user_id,
                action=ChangelogAction.VERSION_CREATE.value,
                change_type=ChangeType.VERSION_CREATE.value,
                diff_summary=f"New version {version} created from parent record",
                event_metadata=metadata or {},
                version=version,
                parent_version_id=parent_record_id,
            )]

        return await self._write("version creation", record_id, build)

    # ===========================================
    # READS
    # ===========================================

    async def get_changelog(
        self,
        record_id: uuid.UUID,
        filters: Optional[ChangelogFilters] = None,
    ) -> List[ChangelogEntry]:
        """Get a record's changelog, newest first."""
        filters = filters or ChangelogFilters()
        query = select(ChangelogEntry).where(ChangelogEntry.record_id == record_id)

        if filters.change_type:
            query = query.where(ChangelogEntry.change_type == filters.change_type)
        if filters.field_name:
            query = query.where(ChangelogEntry.field_name == filters.field_name)
        if filters.user_id:
            query = query.where(ChangelogEntry.user_id == filters.user_id)
        if filters.start_date:
            query = query.where(ChangelogEntry.created_at >= filters.start_date)
        if filters.end_date:
            query = query.where(ChangelogEntry.created_at <= filters.end_date)

        query = query.order_by(ChangelogEntry.created_at.desc())

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def _user_names(self, entries: List[ChangelogEntry]) -> Dict[uuid.UUID, str]:
        async with self.session_factory() as session:
            users = await UserDirectory(session).get_users(entry.user_id for entry in entries)
        return {user_id: user.display_name for user_id, user in users.items()}

    async def get_changelog_summary(self, record_id: uuid.UUID) -> Dict[str, Any]:
        """Counts by change type, user and field plus the twenty latest entries."""
        entries = await self.get_changelog(record_id)
        names = await self._user_names(entries)

        by_type: Dict[str, int] = {}
        by_user: Dict[str, int] = {}
        by_field: Dict[str, int] = {}
        for entry in entries:
            by_type[entry.change_type] = by_type.get(entry.change_type, 0) + 1
            user_name = names.get(entry.user_id, "Unknown")
            by_user[user_name] = by_user.get(user_name, 0) + 1
            if entry.field_name:
                by_field[entry.field_name] = by_field.get(entry.field_name, 0) + 1

        return {
            "record_id": str(record_id),
            "total_changes": len(entries),
            "by_type": by_type,
            "by_user": by_user,
            "by_field": by_field,
            "timeline": [
                {
                    "date": entry.created_at.isoformat(),
                    "action": entry.action,
                    "user": names.get(entry.user_id, "Unknown"),
                    "field": entry.field_name or "N/A",
                    "summary": entry.diff_summary,
                }
                for entry in entries[:20]
            ],
        }

    async def export_changelog_csv(self, record_id: uuid.UUID) -> str:
        """Render the full changelog as CSV text."""
        entries = await self.get_changelog(record_id)
        names = await self._user_names(entries)

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CHANGELOG_CSV_HEADERS)
        writer.writeheader()
        for entry in entries:
            writer.writerow({
                "Date": entry.created_at.isoformat(),
                "User": names.get(entry.user_id, "Unknown"),
                "Action": entry.action,
                "Field": entry.field_name or "",
                "Change Type": entry.change_type,
                "Previous Value": entry.previous_value or "",
                "New Value": entry.new_value or "",
                "Diff Summary": entry.diff_summary or "",
                "Version": entry.version if entry.version is not None else "",
            })

        logger.info(f"Exported {len(entries)} changelog entries for record {record_id}")
        return output.getvalue()
