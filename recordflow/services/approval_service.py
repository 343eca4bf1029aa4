"""
RecordFlow - Approval Service

Starts a record's approval workflow and applies approve/reject/skip
actions to its approval rows.

Gatekeeping checks (actor, approval, permission, comment, status) run
before any write. The transition itself is a conditional update keyed on
the row still being pending, committed together with the resulting
record status. Audit entries and notifications follow as best-effort
side effects whose outcomes are reported separately from the result.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recordflow.config import Settings
from recordflow.models.approval import (
    ApprovalAction,
    ApprovalRecord,
    ApprovalRule,
    ApprovalStage,
    ApprovalStatus,
)
from recordflow.models.base import utcnow
from recordflow.models.record import RecordStatus, ReviewRecord
from recordflow.services.audit_service import AuditService
from recordflow.services.directory import UserDirectory
from recordflow.services.notification_service import NotificationService
from recordflow.services.side_effects import SideEffectReport, SideEffectResult, best_effort
from recordflow.services.workflow_state import DEFAULT_STAGE_NAME, WorkflowState, resolve_workflow_state
from recordflow.store import RecordStore
from recordflow.utils.error_handling import (
    ActorNotFoundException,
    ApprovalNotFoundException,
    CommentRequiredException,
    InvalidTransitionException,
    PermissionDeniedException,
    RecordNotFoundException,
    StoreException,
    ValidationFailedException,
    WorkflowAlreadyExistsException,
)
from recordflow.utils.permissions import ApprovalPermissions, calculate_permissions, is_action_allowed

logger = logging.getLogger(__name__)


TIMESTAMP_FIELDS = {
    ApprovalAction.APPROVE: "approved_at",
    ApprovalAction.REJECT: "rejected_at",
    ApprovalAction.SKIP: "skipped_at",
}


@dataclass
class ApprovalResult:
    """Outcome of process_approval. side_effects never affects success."""
    approval: ApprovalRecord
    record_status: RecordStatus
    workflow: WorkflowState
    side_effects: SideEffectReport = field(default_factory=SideEffectReport)


@dataclass
class WorkflowStartResult:
    record_id: uuid.UUID
    started: bool
    approvals: List[ApprovalRecord] = field(default_factory=list)
    reason: Optional[str] = None
    side_effects: SideEffectReport = field(default_factory=SideEffectReport)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class ApprovalService:
    """Primary review workflow for records."""

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
    # PROCESS APPROVAL
    # ===========================================

    async def process_approval(
        self,
        record_id: uuid.UUID,
        approval_id: uuid.UUID,
        action: Union[ApprovalAction, str],
        actor_email: str,
        comments: Optional[str] = None,
    ) -> ApprovalResult:
        """
        Apply an approve, reject or skip action to one approval row.

        Raises:
            ActorNotFoundException: actor_email is not in the directory
            ApprovalNotFoundException: no such approval on this record
            PermissionDeniedException: the actor's role does not allow the action
            CommentRequiredException: the stage needs a comment and none was given
            InvalidTransitionException: the approval is no longer pending
            TransitionConflictException: a concurrent caller decided it first
        """
        action = ApprovalAction(action)

        actor = await self.directory.find_user_by_email(actor_email)
        if actor is None:
            raise ActorNotFoundException(email=actor_email)

        approval = await self.store.get(ApprovalRecord, approval_id)
        if approval is None or approval.record_id != record_id:
            raise ApprovalNotFoundException(approval_id)

        record = await self.store.get(ReviewRecord, record_id)
        if record is None:
            raise RecordNotFoundException(record_id)

        permissions = calculate_permissions(actor.role, approval.stage)
        if not is_action_allowed(permissions, action):
            raise PermissionDeniedException(action.value, actor.role)

        comment = (comments or "").strip()
        if approval.stage is not None and approval.stage.requires_comment and not comment:
            raise CommentRequiredException(
                f"Stage '{approval.stage.name}' requires a comment"
            )

        if approval.status != ApprovalStatus.PENDING:
            raise InvalidTransitionException("Approval", approval.status.value, action.value)

        previous_approval_status = approval.status
        previous_record_status = record.status
        stage_name = approval.stage.name if approval.stage is not None else DEFAULT_STAGE_NAME

        try:
            approval = await self.store.update(
                ApprovalRecord,
                approval_id,
                {
                    "status": action.resulting_status,
                    "approver_id": actor.id,
                    "comments": comment or None,
                    TIMESTAMP_FIELDS[action]: utcnow(),
                    "version": ApprovalRecord.version + 1,
                },
                expected_status=ApprovalStatus.PENDING,
            )

            approvals = await self.store.query(ApprovalRecord, record_id=record_id)
            workflow = resolve_workflow_state(approvals)

            if action == ApprovalAction.REJECT:
                new_record_status = RecordStatus.REJECTED
            elif workflow.is_approved:
                new_record_status = RecordStatus.APPROVED
            else:
                new_record_status = previous_record_status

            if new_record_status != previous_record_status:
                await self.store.update(ReviewRecord, record_id, {"status": new_record_status})

            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(
            f"Approval {approval_id} on record {record_id}: {previous_approval_status.value} -> "
            f"{approval.status.value} by {actor.email}"
        )

        side_effects = SideEffectReport()
        side_effects.add(await self.audit.log_approval_action(
            record_id=record_id,
            approval_id=approval_id,
            user_id=actor.id,
            action=action,
            previous_status=previous_approval_status,
            new_status=approval.status,
            comments=comment or None,
            metadata={"stage_name": stage_name, "actor_role": actor.role},
        ))
        if new_record_status != previous_record_status:
            side_effects.add(await self.audit.log_status_change(
                record_id=record_id,
                previous_status=previous_record_status,
                new_status=new_record_status,
                user_id=actor.id,
                metadata={"approval_id": str(approval_id)},
            ))

        if action == ApprovalAction.APPROVE and workflow.is_approved:
            side_effects.add(await best_effort(
                "notify:approval_event",
                lambda: self.notifier.send_approval_event(
                    record_id=record_id,
                    title=record.title,
                    client=record.client_name,
                    stage=stage_name,
                    actor_name=actor.display_name,
                    outcome=approval.status.value,
                    comments=comment or None,
                ),
                context=f"record {record_id}",
            ))

        return ApprovalResult(
            approval=approval,
            record_status=new_record_status,
            workflow=workflow,
            side_effects=side_effects,
        )

    # ===========================================
    # START WORKFLOW
    # ===========================================

    def validate_readiness(self, record: ReviewRecord) -> None:
        """Raise ValidationFailedException when required fields are empty."""
        missing = []
        for field_name in self.settings.workflow_required_fields_list:
            value = getattr(record, field_name, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field_name)
        if missing:
            raise ValidationFailedException(missing)

    async def _ensure_default_stage(self) -> ApprovalStage:
        names = self.settings.default_stage_names_list or [DEFAULT_STAGE_NAME]
        existing = await self.store.query(ApprovalStage, name=names[0])
        if existing:
            stage = existing[0]
            if not stage.is_active:
                logger.warning(f"No active approval stages configured; reactivating '{stage.name}'")
                stage = await self.store.update(ApprovalStage, stage.id, {"is_active": True})
            return stage
        logger.warning(f"No active approval stages configured; creating '{names[0]}'")
        return await self.store.insert(ApprovalStage(
            name=names[0],
            description="Default approval stage",
            sort_order=1,
            is_active=True,
        ))

    async def select_stages(self, amount: Any = None) -> List[ApprovalStage]:
        """
        Choose the stages for a new workflow.

        Active amount rules are applied first, in sort order; a rule matches
        when amount >= min_amount. Without a match, the first
        default_stage_limit active stages are used.
        """
        value = _to_decimal(amount)
        if value is not None:
            rules = await self.store.query(
                ApprovalRule,
                condition_type="amount",
                is_active=True,
                order_by=[ApprovalRule.sort_order],
            )
            matched: List[ApprovalStage] = []
            for rule in rules:
                min_amount = _to_decimal((rule.condition_value or {}).get("min_amount"))
                if min_amount is None or value < min_amount:
                    continue
                if rule.stage.is_active and rule.stage not in matched:
                    matched.append(rule.stage)
            if matched:
                return matched

        stages = await self.store.query(
            ApprovalStage,
            is_active=True,
            order_by=[ApprovalStage.sort_order, ApprovalStage.name],
            limit=self.settings.default_stage_limit,
        )
        if stages:
            return stages
        return [await self._ensure_default_stage()]

    async def start_workflow(
        self,
        record_id: uuid.UUID,
        amount: Any = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> WorkflowStartResult:
        """
        Create the pending approval rows for a record and move it to in_review.

        A record that is not ready (missing required fields) is left alone
        and the result reports started=False.

        Raises:
            RecordNotFoundException: the record does not exist
            WorkflowAlreadyExistsException: approval rows already exist
            TransitionConflictException: another caller changed the record status first
        """
        record = await self.store.get(ReviewRecord, record_id)
        if record is None:
            raise RecordNotFoundException(record_id)

        if await self.store.exists(ApprovalRecord, record_id=record_id):
            raise WorkflowAlreadyExistsException(record_id)

        try:
            self.validate_readiness(record)
        except ValidationFailedException as e:
            logger.info(f"Workflow not started for record {record_id}: {e.message}")
            return WorkflowStartResult(record_id=record_id, started=False, reason=e.message)

        if amount is None:
            amount = record.opportunity_amount
        previous_status = record.status

        try:
            # Claims the record first; a concurrent start loses here
            claimed = await self.store.update(
                ReviewRecord,
                record_id,
                {"status": RecordStatus.IN_REVIEW},
                expected_status=previous_status,
            )
            if claimed is None:
                raise RecordNotFoundException(record_id)
            stages = await self.select_stages(amount)
            approvals = [
                ApprovalRecord(
                    record_id=record_id,
                    stage_id=stage.id,
                    stage=stage,
                    status=ApprovalStatus.PENDING,
                )
                for stage in stages
            ]
            await self.store.insert_many(approvals)
            await self.store.commit()
        except StoreException as e:
            await self.store.rollback()
            if isinstance(e.original_error, IntegrityError):
                raise WorkflowAlreadyExistsException(record_id) from e
            raise
        except Exception:
            await self.store.rollback()
            raise

        stage_names = [stage.name for stage in stages]
        logger.info(f"Started workflow for record {record_id} with stages {stage_names}")

        side_effects = SideEffectReport()
        for approval in approvals:
            side_effects.add(await self.audit.log_workflow_started(
                record_id=record_id,
                approval_id=approval.id,
                stage_name=approval.stage.name,
                user_id=actor_id,
                metadata={"amount": str(amount) if amount is not None else None},
            ))
        if previous_status != RecordStatus.IN_REVIEW:
            side_effects.add(await self.audit.log_status_change(
                record_id=record_id,
                previous_status=previous_status,
                new_status=RecordStatus.IN_REVIEW,
                user_id=actor_id,
            ))
        side_effects.add(await best_effort(
            "notify:approval_requested",
            lambda: self.notifier.send_approval_requested(
                record_id=record_id,
                title=record.title,
                client=record.client_name,
                stages=stage_names,
                amount=amount,
            ),
            context=f"record {record_id}",
        ))

        return WorkflowStartResult(
            record_id=record_id,
            started=True,
            approvals=approvals,
            side_effects=side_effects,
        )

    # ===========================================
    # READS / COMMENTS
    # ===========================================

    async def get_workflow(self, record_id: uuid.UUID, actor_email: Optional[str] = None) -> Dict[str, Any]:
        """Resolved workflow state, approval rows and the actor's permissions."""
        record = await self.store.get(ReviewRecord, record_id)
        if record is None:
            raise RecordNotFoundException(record_id)

        approvals = await self.store.query(
            ApprovalRecord,
            record_id=record_id,
            order_by=[ApprovalRecord.created_at],
        )
        approvals.sort(key=lambda a: (a.stage.sort_order if a.stage else 0, a.created_at))
        state = resolve_workflow_state(approvals)

        permissions = ApprovalPermissions()
        if actor_email:
            actor = await self.directory.find_user_by_email(actor_email)
            if actor is None:
                raise ActorNotFoundException(email=actor_email)
            permissions = calculate_permissions(actor.role, state.current_stage)

        return {
            "record_id": record_id,
            "record_status": record.status,
            "state": state,
            "approvals": approvals,
            "permissions": permissions,
        }

    async def get_approval_stats(self, record_id: uuid.UUID) -> Dict[str, Any]:
        """Counts of approval rows per status and an overall workflow status."""
        result = await self.store.session.execute(
            select(ApprovalRecord.status, func.count(ApprovalRecord.id))
            .where(ApprovalRecord.record_id == record_id)
            .group_by(ApprovalRecord.status)
        )
        counts = {status.value: 0 for status in ApprovalStatus}
        for status, count in result.all():
            counts[ApprovalStatus(status).value] = count
        total = sum(counts.values())

        if total == 0:
            workflow_status = "no_workflow"
        elif counts[ApprovalStatus.APPROVED.value]:
            workflow_status = "approved"
        elif counts[ApprovalStatus.REJECTED.value]:
            workflow_status = "rejected"
        else:
            workflow_status = "in_progress"

        return {"record_id": record_id, "total": total, **counts, "workflow_status": workflow_status}

    async def add_comment(
        self,
        record_id: uuid.UUID,
        actor_email: str,
        comment: str,
        approval_id: Optional[uuid.UUID] = None,
    ) -> SideEffectResult:
        """Record a free-text comment on a record's audit trail."""
        actor = await self.directory.find_user_by_email(actor_email)
        if actor is None:
            raise ActorNotFoundException(email=actor_email)
        if await self.store.get(ReviewRecord, record_id) is None:
            raise RecordNotFoundException(record_id)
        text = (comment or "").strip()
        if not text:
            raise CommentRequiredException("Comment cannot be empty", field="comment")
        return await self.audit.log_comment_added(
            record_id=record_id,
            user_id=actor.id,
            comment=text,
            approval_id=approval_id,
        )


async def seed_default_stages(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> int:
    """
    Create the configured default stages when the stage table is empty.

    Returns:
        Number of stages created
    """
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(ApprovalStage))
        if (result.scalar() or 0) > 0:
            return 0
        names = settings.default_stage_names_list or [DEFAULT_STAGE_NAME]
        for index, name in enumerate(names, start=1):
            session.add(ApprovalStage(name=name, sort_order=index, is_active=True))
        await session.commit()
    logger.info(f"Seeded {len(names)} default approval stage(s)")
    return len(names)
