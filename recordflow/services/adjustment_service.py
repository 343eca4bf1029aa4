"""
RecordFlow - Resource Adjustment Service

Workflow for removing a record's allocated resource hours:

    pending -> approved | rejected      (reviewer role or admin)
    approved | rejected -> pending      (admin reversal)

Approval zeroes the record's allocation and marks the requirement as
disabled in the same transaction. The record fields it overwrites are
kept on the request as record_snapshot, and reversal of an approved
request restores them exactly.

Only one request row may exist per record. The existence check is a
plain read before insert, so two concurrent creators can both pass it.

Requests carry threaded comments; internal ones are meant for reviewers
only and can be filtered out of reads.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from recordflow.config import Settings
from recordflow.models.adjustment import AdjustmentComment, AdjustmentStatus, ResourceAdjustmentRequest
from recordflow.models.audit import AuditAction
from recordflow.models.base import utcnow
from recordflow.models.record import ReviewRecord
from recordflow.services.audit_service import AuditService
from recordflow.services.directory import DirectoryUser, UserDirectory
from recordflow.services.notification_service import NotificationService
from recordflow.services.side_effects import SideEffectReport, best_effort
from recordflow.store import RecordStore
from recordflow.utils.error_handling import (
    ActorNotFoundException,
    CommentRequiredException,
    DeleteNotAllowedException,
    DuplicateRequestException,
    InvalidTransitionException,
    NothingToRemoveException,
    PermissionDeniedException,
    RecordNotFoundException,
    RequestNotFoundException,
    ValidationException,
)
from recordflow.utils.permissions import can_review_adjustments, is_admin

logger = logging.getLogger(__name__)


RESOURCE_TYPE = "Adjustment request"


@dataclass
class AdjustmentResult:
    request: Optional[ResourceAdjustmentRequest]
    side_effects: SideEffectReport = field(default_factory=SideEffectReport)


def _decimal(value: Any, field_name: str = "current_amount") -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationException(f"Invalid amount: {value!r}", field=field_name)


def snapshot_allocation(record: ReviewRecord) -> Dict[str, Optional[str]]:
    """JSON-safe copy of the record fields an approval overwrites."""
    return {
        "allocated_hours": str(record.allocated_hours) if record.allocated_hours is not None else None,
        "requirement_disabled": bool(record.requirement_disabled),
        "requirement_disabled_date": (
            record.requirement_disabled_date.isoformat() if record.requirement_disabled_date else None
        ),
        "requirement_disabled_approver_id": (
            str(record.requirement_disabled_approver_id) if record.requirement_disabled_approver_id else None
        ),
        "hours_removed": str(record.hours_removed) if record.hours_removed is not None else None,
    }


def restore_allocation(snapshot: Optional[Dict[str, Any]], fallback_hours: Decimal) -> Dict[str, Any]:
    """Record patch undoing an approval; without a snapshot, fields return to defaults."""
    if not snapshot:
        return {
            "allocated_hours": fallback_hours,
            "requirement_disabled": False,
            "requirement_disabled_date": None,
            "requirement_disabled_approver_id": None,
            "hours_removed": None,
        }
    disabled_date = snapshot.get("requirement_disabled_date")
    approver_id = snapshot.get("requirement_disabled_approver_id")
    hours = snapshot.get("allocated_hours")
    removed = snapshot.get("hours_removed")
    return {
        "allocated_hours": Decimal(hours) if hours is not None else fallback_hours,
        "requirement_disabled": bool(snapshot.get("requirement_disabled", False)),
        "requirement_disabled_date": datetime.fromisoformat(disabled_date) if disabled_date else None,
        "requirement_disabled_approver_id": uuid.UUID(approver_id) if approver_id else None,
        "hours_removed": Decimal(removed) if removed is not None else None,
    }


class ResourceAdjustmentService:
    """Create, decide, reverse and delete resource-adjustment requests."""

    def __init__(
        self,
        store: RecordStore,
        directory: UserDirectory,
        audit: AuditService,
        notifier: NotificationService,
        settings: Settings,
    ):
        self.store = store
        self.directory = directory
        self.audit = audit
        self.notifier = notifier
        self.settings = settings

    # ===========================================
    # HELPERS
    # ===========================================

    async def _get_request(self, request_id: uuid.UUID) -> ResourceAdjustmentRequest:
        request = await self.store.get(ResourceAdjustmentRequest, request_id)
        if request is None:
            raise RequestNotFoundException(request_id)
        return request

    async def _get_actor(self, user_id: uuid.UUID) -> DirectoryUser:
        actor = await self.directory.get_user(user_id)
        if actor is None:
            raise ActorNotFoundException(user_id=user_id)
        return actor

    def _require_reviewer(self, actor: DirectoryUser, action: str) -> None:
        if not can_review_adjustments(actor.role, self.settings.adjustment_reviewer_role):
            raise PermissionDeniedException(action, actor.role)

    @staticmethod
    def _require_admin(actor: DirectoryUser, action: str) -> None:
        if not is_admin(actor.role):
            raise PermissionDeniedException(action, actor.role)

    @staticmethod
    def _require_pending(request: ResourceAdjustmentRequest, action: str) -> None:
        if request.status != AdjustmentStatus.PENDING:
            raise InvalidTransitionException(RESOURCE_TYPE, request.status.value, action)

    # ===========================================
    # CREATE
    # ===========================================

    async def create_request(
        self,
        record_id: uuid.UUID,
        requester_id: uuid.UUID,
        current_amount: Any,
        reason: str,
    ) -> AdjustmentResult:
        """
        Request removal of a record's allocated hours.

        Raises:
            NothingToRemoveException: current_amount is zero or negative
            DuplicateRequestException: a request row already exists for the record
        """
        amount = _decimal(current_amount)
        if amount <= 0:
            raise NothingToRemoveException(current_amount)

        requester = await self._get_actor(requester_id)

        record = await self.store.get(ReviewRecord, record_id)
        if record is None:
            raise RecordNotFoundException(record_id)

        reason = (reason or "").strip()
        if not reason:
            raise CommentRequiredException("A reason is required", field="reason")

        existing = await self.store.query(ResourceAdjustmentRequest, record_id=record_id)
        if existing:
            raise DuplicateRequestException(record_id, existing[0].status.value)

        reviewers = await self.directory.find_users_by_role(self.settings.adjustment_reviewer_role)
        if not reviewers:
            logger.warning(
                f"No '{self.settings.adjustment_reviewer_role}' reviewer found for record {record_id}; "
                "request will be left for administrators"
            )

        request = ResourceAdjustmentRequest(
            record_id=record_id,
            requester_id=requester.id,
            reviewer_id=reviewers[0].id if reviewers else None,
            current_amount=amount,
            requested_amount=Decimal("0"),
            hours_to_remove=amount,
            reason=reason,
            status=AdjustmentStatus.PENDING,
        )
        try:
            await self.store.insert(request)
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Adjustment request {request.id} created for record {record_id} ({amount} hours)")

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_adjustment_action(
            record_id=record_id,
            request_id=request.id,
            action=AuditAction.REQUEST_CREATED,
            user_id=requester.id,
            new_status=AdjustmentStatus.PENDING,
            comments=reason,
            metadata={"previous_hours": amount, "new_hours": 0, "hours_to_remove": amount},
        ))
        side_effects.add(await best_effort(
            "notify:request_created",
            lambda: self.notifier.send_request_created(
                request_id=request.id,
                record_title=record.title,
                client_name=record.client_name,
                requester_name=requester.display_name,
                hours_to_remove=amount,
                reason=reason,
                reviewer_emails=[reviewer.email for reviewer in reviewers],
            ),
            context=f"adjustment request {request.id}",
        ))
        return AdjustmentResult(request=request, side_effects=side_effects)

    # ===========================================
    # DECIDE
    # ===========================================

    async def approve_request(
        self,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        current_amount: Any = None,
        comments: Optional[str] = None,
    ) -> AdjustmentResult:
        """
        Approve a pending request and zero the record's allocation.

        Raises:
            RequestNotFoundException, ActorNotFoundException,
            PermissionDeniedException, InvalidTransitionException,
            TransitionConflictException
        """
        request = await self._get_request(request_id)
        approver = await self._get_actor(approver_id)
        self._require_reviewer(approver, "approve adjustment requests")
        self._require_pending(request, "approve")

        record = await self.store.get(ReviewRecord, request.record_id)
        if record is None:
            raise RecordNotFoundException(request.record_id)

        removed = _decimal(current_amount) if current_amount is not None else record.allocated_hours
        comment = (comments or "").strip() or None
        now = utcnow()

        try:
            request = await self.store.update(
                ResourceAdjustmentRequest,
                request_id,
                {
                    "status": AdjustmentStatus.APPROVED,
                    "approver_id": approver.id,
                    "approved_at": now,
                    "approval_comments": comment,
                    "record_snapshot": snapshot_allocation(record),
                },
                expected_status=AdjustmentStatus.PENDING,
            )
            await self.store.update(
                ReviewRecord,
                record.id,
                {
                    "allocated_hours": Decimal("0"),
                    "requirement_disabled": True,
                    "requirement_disabled_date": now,
                    "requirement_disabled_approver_id": approver.id,
                    "hours_removed": removed,
                },
            )
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Adjustment request {request_id} approved by {approver.email}")

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_adjustment_action(
            record_id=request.record_id,
            request_id=request_id,
            action=AuditAction.REQUEST_APPROVED,
            user_id=approver.id,
            previous_status=AdjustmentStatus.PENDING,
            new_status=AdjustmentStatus.APPROVED,
            comments=comment,
            metadata={"previous_hours": removed, "new_hours": 0},
        ))
        requester = await self.directory.get_user(request.requester_id)
        side_effects.add(await best_effort(
            "notify:request_approved",
            lambda: self.notifier.send_request_approved(
                request_id=request_id,
                record_title=record.title,
                requester_email=requester.email if requester else None,
                approver_name=approver.display_name,
                hours_to_remove=removed,
                comments=comment,
            ),
            context=f"adjustment request {request_id}",
        ))
        return AdjustmentResult(request=request, side_effects=side_effects)

    async def reject_request(
        self,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        reason: str,
        current_amount: Any = None,
    ) -> AdjustmentResult:
        """Reject a pending request; the record's allocation is untouched."""
        request = await self._get_request(request_id)
        approver = await self._get_actor(approver_id)
        self._require_reviewer(approver, "reject adjustment requests")

        reason = (reason or "").strip()
        if not reason:
            raise CommentRequiredException("A rejection reason is required", field="reason")

        self._require_pending(request, "reject")

        hours = _decimal(current_amount) if current_amount is not None else request.current_amount

        try:
            request = await self.store.update(
                ResourceAdjustmentRequest,
                request_id,
                {
                    "status": AdjustmentStatus.REJECTED,
                    "approver_id": approver.id,
                    "rejected_at": utcnow(),
                    "rejection_reason": reason,
                },
                expected_status=AdjustmentStatus.PENDING,
            )
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Adjustment request {request_id} rejected by {approver.email}")

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_adjustment_action(
            record_id=request.record_id,
            request_id=request_id,
            action=AuditAction.REQUEST_REJECTED,
            user_id=approver.id,
            previous_status=AdjustmentStatus.PENDING,
            new_status=AdjustmentStatus.REJECTED,
            comments=reason,
            metadata={"previous_hours": hours, "new_hours": hours},
        ))
        record = await self.store.get(ReviewRecord, request.record_id)
        requester = await self.directory.get_user(request.requester_id)
        side_effects.add(await best_effort(
            "notify:request_rejected",
            lambda: self.notifier.send_request_rejected(
                request_id=request_id,
                record_title=record.title if record else "",
                requester_email=requester.email if requester else None,
                approver_name=approver.display_name,
                hours_to_remove=hours,
                reason=reason,
            ),
            context=f"adjustment request {request_id}",
        ))
        return AdjustmentResult(request=request, side_effects=side_effects)

    # ===========================================
    # ADMINISTRATION
    # ===========================================

    async def reverse_request(
        self,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        reason: str,
    ) -> AdjustmentResult:
        """
        Return a decided request to pending.

        When the request had been approved, the record fields the approval
        overwrote are restored from the request's snapshot.

        Raises:
            InvalidTransitionException: the request is still pending
        """
        request = await self._get_request(request_id)
        admin = await self._get_actor(admin_id)
        self._require_admin(admin, "reverse adjustment requests")

        reason = (reason or "").strip()
        if not reason:
            raise CommentRequiredException("A reversal reason is required", field="reason")

        previous_status = request.status
        if previous_status not in (AdjustmentStatus.APPROVED, AdjustmentStatus.REJECTED):
            raise InvalidTransitionException(RESOURCE_TYPE, previous_status.value, "reverse")

        snapshot = request.record_snapshot
        restored: Optional[Dict[str, Any]] = None

        try:
            request = await self.store.update(
                ResourceAdjustmentRequest,
                request_id,
                {
                    "status": AdjustmentStatus.PENDING,
                    "approver_id": None,
                    "approved_at": None,
                    "approval_comments": None,
                    "rejected_at": None,
                    "rejection_reason": None,
                    "record_snapshot": None,
                    "reversed_at": utcnow(),
                    "reversed_by_id": admin.id,
                    "reversal_reason": reason,
                },
                expected_status=previous_status,
            )
            if previous_status == AdjustmentStatus.APPROVED:
                record = await self.store.get(ReviewRecord, request.record_id)
                if record is not None:
                    restored = restore_allocation(snapshot, request.current_amount)
                    await self.store.update(ReviewRecord, record.id, restored)
                else:
                    logger.warning(f"Record {request.record_id} missing while reversing request {request_id}")
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Adjustment request {request_id} reversed from {previous_status.value} by {admin.email}")

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_adjustment_action(
            record_id=request.record_id,
            request_id=request_id,
            action=AuditAction.REQUEST_REVERSED,
            user_id=admin.id,
            previous_status=previous_status,
            new_status=AdjustmentStatus.PENDING,
            comments=reason,
            metadata={
                "reversed_from": previous_status.value,
                "restored_hours": restored["allocated_hours"] if restored else None,
                "snapshot": snapshot,
            },
        ))
        return AdjustmentResult(request=request, side_effects=side_effects)

    async def delete_request(self, request_id: uuid.UUID, admin_id: uuid.UUID) -> AdjustmentResult:
        """
        Delete a request together with its comments.

        Allowed when the owning record is gone or hidden, or the request is
        still pending.
        """
        request = await self._get_request(request_id)
        admin = await self._get_actor(admin_id)
        self._require_admin(admin, "delete adjustment requests")

        record = await self.store.get(ReviewRecord, request.record_id)
        orphaned = record is None or record.is_hidden
        if not orphaned and request.status != AdjustmentStatus.PENDING:
            raise DeleteNotAllowedException(request_id, request.status.value)

        record_id = request.record_id
        status = request.status
        try:
            await self.store.delete_where(AdjustmentComment, request_id=request_id)
            await self.store.delete(ResourceAdjustmentRequest, request_id)
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Adjustment request {request_id} deleted by {admin.email}")

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_adjustment_action(
            record_id=record_id,
            request_id=request_id,
            action=AuditAction.REQUEST_DELETED,
            user_id=admin.id,
            previous_status=status,
            metadata={"record_missing": record is None, "record_hidden": bool(record and record.is_hidden)},
        ))
        return AdjustmentResult(request=None, side_effects=side_effects)

    # ===========================================
    # COMMENTS
    # ===========================================

    async def add_comment(
        self,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
        comment: str,
        parent_id: Optional[uuid.UUID] = None,
        is_internal: bool = False,
    ) -> AdjustmentComment:
        """
        Add a comment to a request, optionally as a reply.

        Args:
            request_id: Request being discussed
            user_id: Author
            comment: Comment text, stripped before storing
            parent_id: Comment being replied to; must belong to the same request
            is_internal: Hidden from the requester when True

        Returns:
            The stored comment
        """
        text = (comment or "").strip()
        if not text:
            raise CommentRequiredException("Comment text is required", field="comment")

        request = await self._get_request(request_id)
        author = await self._get_actor(user_id)

        if parent_id is not None:
            parent = await self.store.get(AdjustmentComment, parent_id)
            if parent is None or parent.request_id != request.id:
                raise ValidationException(
                    "Parent comment does not belong to this request",
                    field="parent_id",
                    details={"parent_id": str(parent_id)},
                )

        try:
            stored = await self.store.insert(AdjustmentComment(
                request_id=request.id,
                user_id=author.id,
                parent_id=parent_id,
                comment=text,
                is_internal=is_internal,
            ))
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"Comment added to adjustment request {request_id} by {author.email}")
        return stored

    async def get_comments(
        self,
        request_id: uuid.UUID,
        include_internal: bool = True,
    ) -> List[AdjustmentComment]:
        """Comments on a request, oldest first."""
        await self._get_request(request_id)
        filters: Dict[str, Any] = {"request_id": request_id}
        if not include_internal:
            filters["is_internal"] = False
        return await self.store.query(
            AdjustmentComment,
            order_by=[AdjustmentComment.created_at, AdjustmentComment.id],
            **filters,
        )

    # ===========================================
    # READS
    # ===========================================

    async def get_request(self, request_id: uuid.UUID) -> ResourceAdjustmentRequest:
        return await self._get_request(request_id)

    async def list_requests(
        self,
        record_id: Optional[uuid.UUID] = None,
        status: Optional[AdjustmentStatus] = None,
        requester_id: Optional[uuid.UUID] = None,
    ) -> List[ResourceAdjustmentRequest]:
        filters: Dict[str, Any] = {}
        if record_id:
            filters["record_id"] = record_id
        if status:
            filters["status"] = AdjustmentStatus(status)
        if requester_id:
            filters["requester_id"] = requester_id
        return await self.store.query(
            ResourceAdjustmentRequest,
            order_by=[ResourceAdjustmentRequest.created_at.desc()],
            **filters,
        )

    async def get_statistics(self) -> Dict[str, Any]:
        """Request counts by status and total hours removed by approved requests."""
        result = await self.store.session.execute(
            select(
                ResourceAdjustmentRequest.status,
                func.count(ResourceAdjustmentRequest.id),
                func.coalesce(func.sum(ResourceAdjustmentRequest.hours_to_remove), 0),
            ).group_by(ResourceAdjustmentRequest.status)
        )
        counts = {status.value: 0 for status in AdjustmentStatus}
        hours_removed = Decimal("0")
        for status, count, hours in result.all():
            status = AdjustmentStatus(status)
            counts[status.value] = count
            if status == AdjustmentStatus.APPROVED:
                hours_removed = Decimal(str(hours))

        return {
            "total_requests": sum(counts.values()),
            "pending_requests": counts[AdjustmentStatus.PENDING.value],
            "approved_requests": counts[AdjustmentStatus.APPROVED.value],
            "rejected_requests": counts[AdjustmentStatus.REJECTED.value],
            "total_hours_removed": hours_removed,
        }
