"""
RecordFlow - Workflow State Resolver

Derives the current stage and completion of a record's approval workflow
from its approval rows.

Completion is a short-circuit rule rather than a stage-by-stage walk:
any approved row completes the workflow as approved, otherwise any
rejected row completes it as rejected. Stage order is kept as
configuration data and is only used to report the current and next
pending stage. Rows on the historical "Manager/Director/VP Approval"
stages are still recognised as completion triggers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from recordflow.models.approval import ApprovalRecord, ApprovalStage, ApprovalStatus


DEFAULT_STAGE_NAME = "Approval Required"

LEGACY_COMPLETION_STAGES = frozenset({
    "Manager Approval",
    "Director Approval",
    "VP Approval",
})


class WorkflowOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StageRef:
    """Detached view of a stage; id is None for the synthesized default stage."""
    name: str
    sort_order: int = 0
    requires_comment: bool = False
    id: Optional[UUID] = None

    @classmethod
    def from_stage(cls, stage: ApprovalStage) -> "StageRef":
        return cls(
            id=stage.id,
            name=stage.name,
            sort_order=stage.sort_order or 0,
            requires_comment=bool(stage.requires_comment),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "name": self.name,
            "sort_order": self.sort_order,
            "requires_comment": self.requires_comment,
        }


@dataclass(frozen=True)
class WorkflowState:
    current_stage: Optional[StageRef]
    is_complete: bool
    next_stage: Optional[StageRef] = None
    outcome: Optional[WorkflowOutcome] = None
    # Which rule completed the workflow, for diagnostics
    completed_by: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.is_complete and self.outcome == WorkflowOutcome.APPROVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_stage": self.current_stage.to_dict() if self.current_stage else None,
            "next_stage": self.next_stage.to_dict() if self.next_stage else None,
            "is_complete": self.is_complete,
            "outcome": self.outcome.value if self.outcome else None,
            "completed_by": self.completed_by,
        }


def default_stage_ref(name: str = DEFAULT_STAGE_NAME) -> StageRef:
    return StageRef(name=name)


def _status(approval: ApprovalRecord) -> ApprovalStatus:
    return ApprovalStatus(approval.status)


def _ordered_stages(
    approvals: Sequence[ApprovalRecord],
    stages: Optional[Iterable[ApprovalStage]],
) -> List[StageRef]:
    source = list(stages) if stages is not None else [a.stage for a in approvals if a.stage is not None]
    seen = set()
    ordered: List[StageRef] = []
    for stage in sorted(source, key=lambda s: (s.sort_order or 0, s.name)):
        if stage.id in seen:
            continue
        seen.add(stage.id)
        ordered.append(StageRef.from_stage(stage))
    return ordered


def resolve_workflow_state(
    approvals: Iterable[ApprovalRecord],
    stages: Optional[Iterable[ApprovalStage]] = None,
) -> WorkflowState:
    """
    Resolve the workflow state for one record.

    Args:
        approvals: every approval row of the record, with stages loaded
        stages: optional stage list used to order current/next stage;
            defaults to the stages referenced by the approvals
    """
    approvals = list(approvals)

    for approval in approvals:
        if (
            _status(approval) == ApprovalStatus.APPROVED
            and approval.stage is not None
            and approval.stage.name in LEGACY_COMPLETION_STAGES
        ):
            return WorkflowState(
                current_stage=StageRef.from_stage(approval.stage),
                is_complete=True,
                outcome=WorkflowOutcome.APPROVED,
                completed_by="legacy_stage",
            )

    approved = [a for a in approvals if _status(a) == ApprovalStatus.APPROVED]
    if approved:
        stage = approved[0].stage
        return WorkflowState(
            current_stage=StageRef.from_stage(stage) if stage is not None else None,
            is_complete=True,
            outcome=WorkflowOutcome.APPROVED,
            completed_by="approved",
        )

    rejected = [a for a in approvals if _status(a) == ApprovalStatus.REJECTED]
    if rejected:
        stage = rejected[0].stage
        return WorkflowState(
            current_stage=StageRef.from_stage(stage) if stage is not None else None,
            is_complete=True,
            outcome=WorkflowOutcome.REJECTED,
            completed_by="rejected",
        )

    if not approvals:
        return WorkflowState(current_stage=default_stage_ref(), is_complete=False)

    ordered = _ordered_stages(approvals, stages)
    pending_stage_ids = {a.stage_id for a in approvals if _status(a) == ApprovalStatus.PENDING}
    for index, stage in enumerate(ordered):
        if stage.id in pending_stage_ids:
            next_stage = ordered[index + 1] if index + 1 < len(ordered) else None
            return WorkflowState(current_stage=stage, is_complete=False, next_stage=next_stage)

    # Every row was skipped: nothing left to act on, but nobody approved either
    return WorkflowState(current_stage=None, is_complete=False)
