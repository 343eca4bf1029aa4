"""
RecordFlow - Resource Adjustment Service Tests

Hours removal requests: creation, decisions, admin reversal and deletion.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from recordflow.models.adjustment import AdjustmentComment, AdjustmentStatus, ResourceAdjustmentRequest
from recordflow.models.audit import AuditAction
from recordflow.models.record import ReviewRecord
from recordflow.services.adjustment_service import (
    ResourceAdjustmentService,
    restore_allocation,
    snapshot_allocation,
)
from recordflow.services.directory import UserDirectory
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


class RacingInsertStore(RecordStore):
    """Store where another creator commits a request after our duplicate check but before our insert."""

    def __init__(self, session, session_factory, requester_id):
        super().__init__(session)
        self.session_factory = session_factory
        self.requester_id = requester_id

    async def insert(self, obj):
        if isinstance(obj, ResourceAdjustmentRequest):
            async with self.session_factory() as other:
                other.add(ResourceAdjustmentRequest(
                    record_id=obj.record_id,
                    requester_id=self.requester_id,
                    current_amount=obj.current_amount,
                    hours_to_remove=obj.hours_to_remove,
                    reason="Concurrent request",
                    status=AdjustmentStatus.PENDING,
                ))
                await other.commit()
        return await super().insert(obj)


async def create(adjustment_service, record, users, amount="40"):
    result = await adjustment_service.create_request(
        record_id=record.id,
        requester_id=users["sales"].id,
        current_amount=Decimal(amount),
        reason="Customer descoped the delivery work",
    )
    return result.request


async def fetch_record(adjustment_service, record):
    return await adjustment_service.store.get(ReviewRecord, record.id)


# ===========================================
# CREATE
# ===========================================

@pytest.mark.asyncio
class TestCreateRequest:

    async def test_creates_pending_request_for_reviewers(
        self, adjustment_service, audit_service, notifier, record, users
    ):
        result = await adjustment_service.create_request(
            record_id=record.id,
            requester_id=users["sales"].id,
            current_amount="40",
            reason="  Customer descoped the delivery work  ",
        )

        request = result.request
        assert request.status == AdjustmentStatus.PENDING
        assert request.current_amount == Decimal("40")
        assert request.hours_to_remove == Decimal("40")
        assert request.requested_amount == Decimal("0")
        assert request.reason == "Customer descoped the delivery work"
        assert request.reviewer_id == users["pmo"].id
        assert result.side_effects.all_ok

        assert notifier.names() == ["request_created"]
        assert notifier.calls[0]["reviewer_emails"] == ["pmo@example.com"]

        trail = await audit_service.get_audit_trail(record.id)
        assert trail[0].action == AuditAction.REQUEST_CREATED.value
        assert trail[0].request_id == request.id
        assert trail[0].event_metadata == {"previous_hours": "40", "new_hours": 0, "hours_to_remove": "40"}

        # Nothing changes on the record until approval
        stored = await fetch_record(adjustment_service, record)
        assert stored.allocated_hours == Decimal("40")
        assert stored.requirement_disabled is False

    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_nothing_to_remove(self, adjustment_service, record, users, amount):
        with pytest.raises(NothingToRemoveException):
            await create(adjustment_service, record, users, amount=amount)

    async def test_reason_required(self, adjustment_service, record, users):
        with pytest.raises(CommentRequiredException) as exc_info:
            await adjustment_service.create_request(record.id, users["sales"].id, 40, "   ")
        assert exc_info.value.field == "reason"

    async def test_unknown_record_and_requester(self, adjustment_service, record, users):
        with pytest.raises(RecordNotFoundException):
            await adjustment_service.create_request(uuid.uuid4(), users["sales"].id, 40, "Descoped")
        with pytest.raises(ActorNotFoundException):
            await adjustment_service.create_request(record.id, uuid.uuid4(), 40, "Descoped")

    async def test_any_existing_request_blocks_a_new_one(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.reject_request(request.id, users["pmo"].id, reason="Hours still needed")

        with pytest.raises(DuplicateRequestException) as exc_info:
            await create(adjustment_service, record, users)
        assert exc_info.value.details["existing_status"] == "rejected"

    async def test_no_reviewers_still_creates_request(self, adjustment_service, db_session, notifier, record, users):
        users["pmo"].is_active = False
        await db_session.commit()

        request = await create(adjustment_service, record, users)
        assert request.reviewer_id is None
        assert notifier.calls[0]["reviewer_emails"] == []

    async def test_notification_failure_is_reported_not_raised(self, adjustment_service, notifier, record, users):
        notifier.fail = True
        result = await adjustment_service.create_request(record.id, users["sales"].id, 40, "Descoped")

        assert result.request.status == AdjustmentStatus.PENDING
        assert [failure.name for failure in result.side_effects.failures] == ["notify:request_created"]

    async def test_concurrent_creators_can_both_insert(
        self, db_session, session_factory, audit_service, notifier, test_settings, record, users
    ):
        # The duplicate guard is a read before insert, not a constraint
        service = ResourceAdjustmentService(
            RacingInsertStore(db_session, session_factory, users["sales"].id),
            UserDirectory(db_session),
            audit_service,
            notifier,
            test_settings,
        )
        await service.create_request(record.id, users["sales"].id, 40, "Descoped")

        rows = await service.store.query(ResourceAdjustmentRequest, record_id=record.id)
        assert len(rows) == 2


# ===========================================
# DECIDE
# ===========================================

@pytest.mark.asyncio
class TestApproveRequest:

    async def test_approval_zeroes_allocation(self, adjustment_service, audit_service, notifier, record, users):
        request = await create(adjustment_service, record, users)
        notifier.calls.clear()

        result = await adjustment_service.approve_request(
            request.id, users["pmo"].id, current_amount=Decimal("40"), comments="Agreed with client"
        )

        approved = result.request
        assert approved.status == AdjustmentStatus.APPROVED
        assert approved.approver_id == users["pmo"].id
        assert approved.approved_at is not None
        assert approved.approval_comments == "Agreed with client"
        assert Decimal(approved.record_snapshot["allocated_hours"]) == Decimal("40")
        assert approved.record_snapshot["requirement_disabled"] is False

        stored = await fetch_record(adjustment_service, record)
        assert stored.allocated_hours == Decimal("0")
        assert stored.requirement_disabled is True
        assert stored.requirement_disabled_date is not None
        assert stored.requirement_disabled_approver_id == users["pmo"].id
        assert stored.hours_removed == Decimal("40")

        assert notifier.names() == ["request_approved"]
        assert notifier.calls[0]["requester_email"] == "sales@example.com"

        trail = await audit_service.get_audit_trail(record.id)
        assert trail[0].action == AuditAction.REQUEST_APPROVED.value
        assert trail[0].previous_status == "pending"
        assert trail[0].new_status == "approved"

    async def test_admin_can_approve(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        result = await adjustment_service.approve_request(request.id, users["admin"].id)
        assert result.request.status == AdjustmentStatus.APPROVED

    async def test_other_roles_cannot_approve(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        with pytest.raises(PermissionDeniedException):
            await adjustment_service.approve_request(request.id, users["manager"].id)

        stored = await fetch_record(adjustment_service, record)
        assert stored.allocated_hours == Decimal("40")

    async def test_only_pending_requests_can_be_approved(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)

        with pytest.raises(InvalidTransitionException):
            await adjustment_service.approve_request(request.id, users["admin"].id)

    async def test_unknown_request(self, adjustment_service, users):
        with pytest.raises(RequestNotFoundException):
            await adjustment_service.approve_request(uuid.uuid4(), users["pmo"].id)


@pytest.mark.asyncio
class TestRejectRequest:

    async def test_rejection_leaves_record_unchanged(self, adjustment_service, notifier, record, users):
        request = await create(adjustment_service, record, users)
        notifier.calls.clear()

        result = await adjustment_service.reject_request(request.id, users["pmo"].id, reason="Hours still needed")

        assert result.request.status == AdjustmentStatus.REJECTED
        assert result.request.rejection_reason == "Hours still needed"
        assert result.request.rejected_at is not None

        stored = await fetch_record(adjustment_service, record)
        assert stored.allocated_hours == Decimal("40")
        assert stored.requirement_disabled is False
        assert notifier.names() == ["request_rejected"]

    async def test_reason_required(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        with pytest.raises(CommentRequiredException):
            await adjustment_service.reject_request(request.id, users["pmo"].id, reason="")


# ===========================================
# REVERSE / DELETE
# ===========================================

@pytest.mark.asyncio
class TestReverseRequest:

    async def test_reversal_restores_allocation(self, adjustment_service, audit_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)
        assert (await fetch_record(adjustment_service, record)).allocated_hours == Decimal("0")

        result = await adjustment_service.reverse_request(request.id, users["admin"].id, reason="Approved in error")

        reversed_request = result.request
        assert reversed_request.status == AdjustmentStatus.PENDING
        assert reversed_request.approver_id is None
        assert reversed_request.approved_at is None
        assert reversed_request.record_snapshot is None
        assert reversed_request.reversed_by_id == users["admin"].id
        assert reversed_request.reversal_reason == "Approved in error"
        assert reversed_request.reversed_at is not None

        stored = await fetch_record(adjustment_service, record)
        assert stored.allocated_hours == Decimal("40")
        assert stored.requirement_disabled is False
        assert stored.requirement_disabled_date is None
        assert stored.requirement_disabled_approver_id is None
        assert stored.hours_removed is None

        trail = await audit_service.get_audit_trail(record.id)
        assert trail[0].action == AuditAction.REQUEST_REVERSED.value
        assert trail[0].previous_status == "approved"
        assert trail[0].new_status == "pending"

    async def test_reversed_request_can_be_decided_again(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.reject_request(request.id, users["pmo"].id, reason="Not yet")
        await adjustment_service.reverse_request(request.id, users["admin"].id, reason="Client confirmed")

        result = await adjustment_service.approve_request(request.id, users["pmo"].id)
        assert result.request.status == AdjustmentStatus.APPROVED
        assert (await fetch_record(adjustment_service, record)).allocated_hours == Decimal("0")

    async def test_reversing_rejection_does_not_touch_record(self, adjustment_service, db_session, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.reject_request(request.id, users["pmo"].id, reason="Not yet")
        record.allocated_hours = Decimal("32")
        await db_session.commit()

        await adjustment_service.reverse_request(request.id, users["admin"].id, reason="Reopen")
        assert (await fetch_record(adjustment_service, record)).allocated_hours == Decimal("32")

    async def test_only_admin_can_reverse(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)

        with pytest.raises(PermissionDeniedException):
            await adjustment_service.reverse_request(request.id, users["pmo"].id, reason="Undo")

    async def test_pending_request_cannot_be_reversed(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        with pytest.raises(InvalidTransitionException):
            await adjustment_service.reverse_request(request.id, users["admin"].id, reason="Undo")

    async def test_reason_required(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)
        with pytest.raises(CommentRequiredException):
            await adjustment_service.reverse_request(request.id, users["admin"].id, reason=" ")


@pytest.mark.asyncio
class TestDeleteRequest:

    async def test_pending_request_can_be_deleted(self, adjustment_service, audit_service, record, users):
        request = await create(adjustment_service, record, users)

        result = await adjustment_service.delete_request(request.id, users["admin"].id)

        assert result.request is None
        assert await adjustment_service.store.get(ResourceAdjustmentRequest, request.id) is None
        trail = await audit_service.get_audit_trail(record.id)
        assert trail[0].action == AuditAction.REQUEST_DELETED.value

    async def test_decided_request_on_visible_record_is_protected(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)

        with pytest.raises(DeleteNotAllowedException):
            await adjustment_service.delete_request(request.id, users["admin"].id)

    async def test_decided_request_on_hidden_record_can_be_deleted(self, adjustment_service, db_session, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(request.id, users["pmo"].id)
        stored = await fetch_record(adjustment_service, record)
        stored.is_hidden = True
        await db_session.commit()

        await adjustment_service.delete_request(request.id, users["admin"].id)
        assert await adjustment_service.store.get(ResourceAdjustmentRequest, request.id) is None

    async def test_request_for_missing_record_can_be_deleted(self, adjustment_service, db_session, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.reject_request(request.id, users["pmo"].id, reason="No")
        await db_session.delete(await fetch_record(adjustment_service, record))
        await db_session.commit()

        await adjustment_service.delete_request(request.id, users["admin"].id)
        result = await db_session.execute(select(ResourceAdjustmentRequest))
        assert result.scalars().all() == []

    async def test_only_admin_can_delete(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        with pytest.raises(PermissionDeniedException):
            await adjustment_service.delete_request(request.id, users["pmo"].id)

    async def test_deleting_request_removes_its_comments(self, adjustment_service, db_session, record, users):
        request = await create(adjustment_service, record, users)
        await adjustment_service.add_comment(request.id, users["pmo"].id, "Checking with delivery")

        await adjustment_service.delete_request(request.id, users["admin"].id)

        result = await db_session.execute(select(AdjustmentComment))
        assert result.scalars().all() == []


# ===========================================
# COMMENTS
# ===========================================

@pytest.mark.asyncio
class TestComments:

    async def test_comment_is_stored_trimmed(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)

        comment = await adjustment_service.add_comment(request.id, users["pmo"].id, "  Checking with delivery  ")

        assert comment.comment == "Checking with delivery"
        assert comment.user_id == users["pmo"].id
        assert comment.parent_id is None
        assert comment.is_internal is False

    async def test_replies_and_internal_notes(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)
        question = await adjustment_service.add_comment(request.id, users["pmo"].id, "Is phase two cancelled too?")
        reply = await adjustment_service.add_comment(
            request.id, users["sales"].id, "Yes, both phases", parent_id=question.id
        )
        await adjustment_service.add_comment(request.id, users["pmo"].id, "Confirm with finance", is_internal=True)

        everything = await adjustment_service.get_comments(request.id)
        assert [c.comment for c in everything] == [
            "Is phase two cancelled too?",
            "Yes, both phases",
            "Confirm with finance",
        ]
        assert everything[1].parent_id == question.id
        assert reply.parent_id == question.id

        public = await adjustment_service.get_comments(request.id, include_internal=False)
        assert [c.comment for c in public] == ["Is phase two cancelled too?", "Yes, both phases"]

    async def test_blank_comment_is_rejected(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)

        with pytest.raises(CommentRequiredException) as exc_info:
            await adjustment_service.add_comment(request.id, users["pmo"].id, "   ")
        assert exc_info.value.field == "comment"
        assert await adjustment_service.get_comments(request.id) == []

    async def test_parent_must_belong_to_same_request(self, adjustment_service, db_session, record, users):
        request = await create(adjustment_service, record, users)
        other_record = ReviewRecord(
            title="Globex support", client_name="Globex", allocated_hours=Decimal("8"), author_id=users["sales"].id
        )
        db_session.add(other_record)
        await db_session.commit()
        other_request = await create(adjustment_service, other_record, users, amount="8")
        foreign = await adjustment_service.add_comment(other_request.id, users["pmo"].id, "Elsewhere")

        with pytest.raises(ValidationException) as exc_info:
            await adjustment_service.add_comment(request.id, users["pmo"].id, "Reply", parent_id=foreign.id)
        assert exc_info.value.field == "parent_id"

        with pytest.raises(ValidationException):
            await adjustment_service.add_comment(request.id, users["pmo"].id, "Reply", parent_id=uuid.uuid4())

    async def test_unknown_request_and_author(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)

        with pytest.raises(RequestNotFoundException):
            await adjustment_service.add_comment(uuid.uuid4(), users["pmo"].id, "Hello")
        with pytest.raises(ActorNotFoundException):
            await adjustment_service.add_comment(request.id, uuid.uuid4(), "Hello")
        with pytest.raises(RequestNotFoundException):
            await adjustment_service.get_comments(uuid.uuid4())


# ===========================================
# READS / HELPERS
# ===========================================

@pytest.mark.asyncio
class TestReads:

    async def test_statistics(self, adjustment_service, db_session, record, users):
        first = await create(adjustment_service, record, users)
        await adjustment_service.approve_request(first.id, users["pmo"].id)

        second_record = ReviewRecord(title="Globex", client_name="Globex", allocated_hours=Decimal("12.5"))
        db_session.add(second_record)
        await db_session.commit()
        await create(adjustment_service, second_record, users, amount="12.5")

        stats = await adjustment_service.get_statistics()
        assert stats == {
            "total_requests": 2,
            "pending_requests": 1,
            "approved_requests": 1,
            "rejected_requests": 0,
            "total_hours_removed": Decimal("40"),
        }

    async def test_list_requests_filters(self, adjustment_service, record, users):
        request = await create(adjustment_service, record, users)

        assert [r.id for r in await adjustment_service.list_requests(record_id=record.id)] == [request.id]
        assert await adjustment_service.list_requests(status=AdjustmentStatus.APPROVED) == []
        assert len(await adjustment_service.list_requests(requester_id=users["sales"].id)) == 1


class TestAllocationSnapshot:

    def test_snapshot_round_trips_through_restore(self):
        approver_id = uuid.uuid4()
        record = ReviewRecord(
            allocated_hours=Decimal("16.50"),
            requirement_disabled=False,
            requirement_disabled_date=None,
            requirement_disabled_approver_id=approver_id,
            hours_removed=Decimal("4"),
        )
        restored = restore_allocation(snapshot_allocation(record), fallback_hours=Decimal("99"))
        assert restored == {
            "allocated_hours": Decimal("16.50"),
            "requirement_disabled": False,
            "requirement_disabled_date": None,
            "requirement_disabled_approver_id": approver_id,
            "hours_removed": Decimal("4"),
        }

    def test_missing_snapshot_falls_back_to_defaults(self):
        restored = restore_allocation(None, fallback_hours=Decimal("40"))
        assert restored["allocated_hours"] == Decimal("40")
        assert restored["requirement_disabled"] is False
        assert restored["hours_removed"] is None
