"""
RecordFlow - Approval Schemas

Pydantic schemas for starting workflows and processing approvals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from recordflow.models.approval import ApprovalAction, ApprovalStatus
from recordflow.models.record import RecordStatus


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class StartWorkflowRequest(BaseModel):
    """Schema for starting a record's approval workflow."""
    amount: Optional[Decimal] = Field(None, ge=0, description="Overrides the record's opportunity amount")
    actor_id: Optional[UUID] = None


class ProcessApprovalRequest(BaseModel):
    """Schema for approving, rejecting or skipping an approval row."""
    action: ApprovalAction
    actor_email: EmailStr
    comments: Optional[str] = Field(None, max_length=5000)


class CommentRequest(BaseModel):
    actor_email: EmailStr
    comment: str = Field(..., min_length=1, max_length=5000)
    approval_id: Optional[UUID] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class SideEffectResponse(BaseModel):
    """Outcome of one best-effort audit or notification call."""
    name: str
    ok: bool
    error: Optional[str] = None


class StageResponse(BaseModel):
    name: str
    sort_order: int = 0
    requires_comment: bool = False
    id: Optional[UUID] = None


class WorkflowStateResponse(BaseModel):
    current_stage: Optional[StageResponse] = None
    is_complete: bool
    next_stage: Optional[StageResponse] = None
    outcome: Optional[str] = None
    completed_by: Optional[str] = None


class ApprovalResponse(BaseModel):
    """Schema for one approval row."""
    id: UUID
    record_id: UUID
    stage_id: UUID
    stage_name: Optional[str] = None
    status: ApprovalStatus
    approver_id: Optional[UUID] = None
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_approval(cls, approval) -> "ApprovalResponse":
        response = cls.model_validate(approval)
        response.stage_name = approval.stage.name if approval.stage is not None else None
        return response


class ProcessApprovalResponse(BaseModel):
    approval: ApprovalResponse
    record_status: RecordStatus
    workflow: WorkflowStateResponse
    side_effects: List[SideEffectResponse] = []


class StartWorkflowResponse(BaseModel):
    record_id: UUID
    started: bool
    reason: Optional[str] = None
    approvals: List[ApprovalResponse] = []
    side_effects: List[SideEffectResponse] = []


class WorkflowResponse(BaseModel):
    """Resolved workflow with the caller's permissions."""
    record_id: UUID
    record_status: RecordStatus
    state: WorkflowStateResponse
    approvals: List[ApprovalResponse]
    permissions: Dict[str, bool]


class ApprovalStatsResponse(BaseModel):
    record_id: UUID
    total: int
    pending: int
    approved: int
    rejected: int
    skipped: int
    workflow_status: str


class MessageResponse(BaseModel):
    message: str
    details: Optional[Dict[str, Any]] = None
