"""
RecordFlow - Resource Adjustment Schemas

Pydantic schemas for hours removal requests.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recordflow.models.adjustment import AdjustmentStatus
from recordflow.schemas.approval import SideEffectResponse


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class AdjustmentCreateRequest(BaseModel):
    """Schema for requesting removal of a record's allocated hours."""
    record_id: UUID
    requester_id: UUID
    current_amount: Decimal = Field(..., description="Hours currently allocated to the record")
    reason: str = Field(..., max_length=5000)


class AdjustmentApproveRequest(BaseModel):
    approver_id: UUID
    current_amount: Optional[Decimal] = None
    comments: Optional[str] = Field(None, max_length=5000)


class AdjustmentRejectRequest(BaseModel):
    approver_id: UUID
    reason: str = Field(..., max_length=5000)
    current_amount: Optional[Decimal] = None


class AdjustmentReverseRequest(BaseModel):
    """Schema for an administrator returning a decided request to pending."""
    admin_id: UUID
    reason: str = Field(..., max_length=5000)


class AdjustmentCommentRequest(BaseModel):
    """Schema for commenting on a request, optionally as a reply."""
    user_id: UUID
    comment: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[UUID] = None
    is_internal: bool = False


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class AdjustmentResponse(BaseModel):
    """Schema for a resource adjustment request."""
    id: UUID
    record_id: UUID
    requester_id: UUID
    reviewer_id: Optional[UUID] = None
    current_amount: Decimal
    requested_amount: Decimal
    hours_to_remove: Decimal
    reason: str
    status: AdjustmentStatus

    # Decision
    approver_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    approval_comments: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # Reversal
    reversed_at: Optional[datetime] = None
    reversed_by_id: Optional[UUID] = None
    reversal_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdjustmentActionResponse(BaseModel):
    request: Optional[AdjustmentResponse] = None
    side_effects: List[SideEffectResponse] = []


class AdjustmentListResponse(BaseModel):
    requests: List[AdjustmentResponse]
    total: int


class AdjustmentStatisticsResponse(BaseModel):
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    total_hours_removed: Decimal


class AdjustmentCommentResponse(BaseModel):
    id: UUID
    request_id: UUID
    user_id: UUID
    parent_id: Optional[UUID] = None
    comment: str
    is_internal: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdjustmentDetailResponse(AdjustmentResponse):
    """A request with its comments, oldest first."""
    comments: List[AdjustmentCommentResponse] = []
