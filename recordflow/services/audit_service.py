"""
RecordFlow - Audit Trail Service

Append-only audit logging for workflow decisions.

Every write runs in its own short session from the injected session
factory, after the primary transition has been committed. A failed write
is logged and reported as a SideEffectResult; it never raises and never
rolls back the action it describes.
"""

import csv
import io
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recordflow.models.approval import ApprovalAction
from recordflow.models.audit import AuditAction, AuditLogEntry
from recordflow.services.directory import UserDirectory
from recordflow.services.side_effects import SideEffectResult, best_effort

logger = logging.getLogger(__name__)


AUDIT_CSV_HEADERS = [
    "Date",
    "User",
    "Action",
    "Previous Status",
    "New Status",
    "Comments",
    "Metadata",
]

APPROVAL_ACTION_TO_AUDIT = {
    ApprovalAction.APPROVE: AuditAction.APPROVE,
    ApprovalAction.REJECT: AuditAction.REJECT,
    ApprovalAction.SKIP: AuditAction.SKIP,
}


@dataclass
class AuditTrailFilters:
    """Optional filters for reading the audit trail."""
    action: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def _value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


class AuditService:
    """Service for writing and reading the record audit trail."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ===========================================
    # WRITES (best effort)
    # ===========================================

    async def log_action(
        self,
        record_id: uuid.UUID,
        action: Union[AuditAction, str],
        user_id: Optional[uuid.UUID] = None,
        approval_id: Optional[uuid.UUID] = None,
        request_id: Optional[uuid.UUID] = None,
        previous_status: Any = None,
        new_status: Any = None,
        comments: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SideEffectResult:
        """
        Append one audit entry.

        Returns:
            SideEffectResult whose value is the created AuditLogEntry on success
        """
        async def write() -> AuditLogEntry:
            entry = AuditLogEntry(
                record_id=record_id,
                approval_id=approval_id,
                request_id=request_id,
                user_id=user_id,
                action=_value(action),
                previous_status=_value(previous_status),
                new_status=_value(new_status),
                comments=comments,
                # UUIDs, Decimals and datetimes are stored as strings
                event_metadata=json.loads(json.dumps(metadata or {}, default=str)),
            )
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
            return entry

        return await best_effort(
            f"audit:{_value(action)}",
            write,
            context=f"record {record_id}",
        )

    async def log_approval_action(
        self,
        record_id: uuid.UUID,
        approval_id: uuid.UUID,
        user_id: uuid.UUID,
        action: Union[ApprovalAction, str],
        previous_status: Any,
        new_status: Any,
        comments: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SideEffectResult:
        """Log approve/reject/skip on an approval row."""
        return await self.log_action(
            record_id=record_id,
            action=APPROVAL_ACTION_TO_AUDIT[ApprovalAction(action)],
            user_id=user_id,
            approval_id=approval_id,
            previous_status=previous_status,
            new_status=new_status,
            comments=comments,
            metadata=metadata,
        )

    async def log_workflow_started(
        self,
        record_id: uuid.UUID,
        approval_id: uuid.UUID,
        stage_name: str,
        user_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SideEffectResult:
        return await self.log_action(
            record_id=record_id,
            action=AuditAction.WORKFLOW_STARTED,
            user_id=user_id,
            approval_id=approval_id,
            new_status="pending",
            metadata={"stage_name": stage_name, **(metadata or {})},
        )

    async def log_comment_added(
        self,
        record_id: uuid.UUID,
        user_id: uuid.UUID,
        comment: str,
        approval_id: Optional[uuid.UUID] = None,
    ) -> SideEffectResult:
        return await self.log_action(
            record_id=record_id,
            action=AuditAction.COMMENT_ADDED,
            user_id=user_id,
            approval_id=approval_id,
            comments=comment,
        )

    async def log_status_change(
        self,
        record_id: uuid.UUID,
        previous_status: Any,
        new_status: Any,
        user_id: Optional[uuid.UUID] = None,
        comments: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SideEffectResult:
        return await self.log_action(
            record_id=record_id,
            action=AuditAction.STATUS_CHANGE,
            user_id=user_id,
            previous_status=previous_status,
            new_status=new_status,
            comments=comments,
            metadata=metadata,
        )

    async def log_adjustment_action(
        self,
        record_id: uuid.UUID,
        request_id: uuid.UUID,
        action: AuditAction,
        user_id: Optional[uuid.UUID],
        previous_status: Any = None,
        new_status: Any = None,
        comments: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SideEffectResult:
        """Log a resource-adjustment request event."""
        return await self.log_action(
            record_id=record_id,
            action=action,
            user_id=user_id,
            request_id=request_id,
            previous_status=previous_status,
            new_status=new_status,
            comments=comments,
            metadata=metadata,
        )

    # ===========================================
    # READS
    # ===========================================

    async def get_audit_trail(
        self,
        record_id: uuid.UUID,
        filters: Optional[AuditTrailFilters] = None,
    ) -> List[AuditLogEntry]:
        """
        Get a record's audit trail, newest first.

        Args:
            record_id: Record the entries belong to
            filters: Optional action, user and date-range filters
        """
        filters = filters or AuditTrailFilters()
        query = select(AuditLogEntry).where(AuditLogEntry.record_id == record_id)

        if filters.action:
            query = query.where(AuditLogEntry.action == _value(filters.action))

        if filters.user_id:
            query = query.where(AuditLogEntry.user_id == filters.user_id)

        if filters.start_date:
            query = query.where(AuditLogEntry.created_at >= filters.start_date)

        if filters.end_date:
            query = query.where(AuditLogEntry.created_at <= filters.end_date)

        query = query.order_by(AuditLogEntry.created_at.desc())

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def _user_names(self, user_ids) -> Dict[uuid.UUID, str]:
        async with self.session_factory() as session:
            users = await UserDirectory(session).get_users(user_ids)
        return {user_id: user.display_name for user_id, user in users.items()}

    async def get_audit_summary(self, record_id: uuid.UUID) -> Dict[str, Any]:
        """Counts by action and user plus the ten most recent entries."""
        entries = await self.get_audit_trail(record_id)
        names = await self._user_names(entry.user_id for entry in entries)

        by_action: Dict[str, int] = {}
        by_user: Dict[str, int] = {}
        for entry in entries:
            by_action[entry.action] = by_action.get(entry.action, 0) + 1
            user_name = names.get(entry.user_id, "System")
            by_user[user_name] = by_user.get(user_name, 0) + 1

        return {
            "record_id": str(record_id),
            "total_actions": len(entries),
            "by_action": by_action,
            "by_user": by_user,
            "timeline": [
                {
                    "date": entry.created_at.isoformat(),
                    "action": entry.action,
                    "user": names.get(entry.user_id, "System"),
                    "previous_status": entry.previous_status,
                    "new_status": entry.new_status,
                    "comments": entry.comments,
                }
                for entry in entries[:10]
            ],
        }

    async def export_audit_trail_csv(self, record_id: uuid.UUID) -> str:
        """Render the full audit trail as CSV text."""
        entries = await self.get_audit_trail(record_id)
        names = await self._user_names(entry.user_id for entry in entries)

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=AUDIT_CSV_HEADERS)
        writer.writeheader()
        for entry in entries:
            writer.writerow({
                "Date": entry.created_at.isoformat(),
                "User": names.get(entry.user_id, "System"),
                "Action": entry.action,
                "Previous Status": entry.previous_status or "",
                "New Status": entry.new_status or "",
                "Comments": entry.comments or "",
                "Metadata": json.dumps(entry.event_metadata, default=str) if entry.event_metadata else "",
            })

        logger.info(f"Exported {len(entries)} audit entries for record {record_id}")
        return output.getvalue()
