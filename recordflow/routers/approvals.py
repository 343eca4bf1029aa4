"""
RecordFlow - Approvals Router

API endpoints for starting a record's approval workflow and acting on
its approval rows.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from recordflow.dependencies import get_approval_service
from recordflow.schemas.approval import (
    ApprovalResponse,
    ApprovalStatsResponse,
    CommentRequest,
    MessageResponse,
    ProcessApprovalRequest,
    ProcessApprovalResponse,
    StartWorkflowRequest,
    StartWorkflowResponse,
    WorkflowResponse,
    WorkflowStateResponse,
)
from recordflow.services.approval_service import ApprovalService


router = APIRouter()


@router.post(
    "/{record_id}/workflow",
    response_model=StartWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start approval workflow",
    description="Create pending approval rows for a record and move it to review.",
)
async def start_workflow(
    record_id: UUID,
    request: Optional[StartWorkflowRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    request = request or StartWorkflowRequest()
    result = await service.start_workflow(record_id, amount=request.amount, actor_id=request.actor_id)
    return StartWorkflowResponse(
        record_id=result.record_id,
        started=result.started,
        reason=result.reason,
        approvals=[ApprovalResponse.from_approval(approval) for approval in result.approvals],
        side_effects=result.side_effects.to_list(),
    )


@router.get(
    "/{record_id}/workflow",
    response_model=WorkflowResponse,
    summary="Get workflow state",
)
async def get_workflow(
    record_id: UUID,
    actor_email: Optional[str] = Query(None, description="Include this user's permissions"),
    service: ApprovalService = Depends(get_approval_service),
):
    """Resolved workflow state, approval rows and the caller's permissions."""
    workflow = await service.get_workflow(record_id, actor_email=actor_email)
    return WorkflowResponse(
        record_id=workflow["record_id"],
        record_status=workflow["record_status"],
        state=WorkflowStateResponse(**workflow["state"].to_dict()),
        approvals=[ApprovalResponse.from_approval(approval) for approval in workflow["approvals"]],
        permissions=workflow["permissions"].to_dict(),
    )


@router.post(
    "/{record_id}/approvals/{approval_id}",
    response_model=ProcessApprovalResponse,
    summary="Process approval",
    description="Approve, reject or skip one pending approval row.",
)
async def process_approval(
    record_id: UUID,
    approval_id: UUID,
    request: ProcessApprovalRequest,
    service: ApprovalService = Depends(get_approval_service),
):
    result = await service.process_approval(
        record_id=record_id,
        approval_id=approval_id,
        action=request.action,
        actor_email=request.actor_email,
        comments=request.comments,
    )
    return ProcessApprovalResponse(
        approval=ApprovalResponse.from_approval(result.approval),
        record_status=result.record_status,
        workflow=WorkflowStateResponse(**result.workflow.to_dict()),
        side_effects=result.side_effects.to_list(),
    )


@router.get(
    "/{record_id}/approvals/stats",
    response_model=ApprovalStatsResponse,
    summary="Approval statistics",
)
async def get_approval_stats(
    record_id: UUID,
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.get_approval_stats(record_id)


@router.post(
    "/{record_id}/comments",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
)
async def add_comment(
    record_id: UUID,
    request: CommentRequest,
    service: ApprovalService = Depends(get_approval_service),
):
    result = await service.add_comment(
        record_id=record_id,
        actor_email=request.actor_email,
        comment=request.comment,
        approval_id=request.approval_id,
    )
    return MessageResponse(
        message="Comment added" if result.ok else "Comment could not be recorded",
        details=result.to_dict(),
    )
