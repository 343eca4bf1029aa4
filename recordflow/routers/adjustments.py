"""
RecordFlow - Resource Adjustments Router

API endpoints for hours removal requests.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from recordflow.dependencies import get_adjustment_service
from recordflow.models.adjustment import AdjustmentStatus
from recordflow.schemas.adjustment import (
    AdjustmentActionResponse,
    AdjustmentApproveRequest,
    AdjustmentCommentRequest,
    AdjustmentCommentResponse,
    AdjustmentCreateRequest,
    AdjustmentDetailResponse,
    AdjustmentListResponse,
    AdjustmentRejectRequest,
    AdjustmentResponse,
    AdjustmentReverseRequest,
    AdjustmentStatisticsResponse,
)
from recordflow.services.adjustment_service import AdjustmentResult, ResourceAdjustmentService


router = APIRouter()


def _action_response(result: AdjustmentResult) -> AdjustmentActionResponse:
    return AdjustmentActionResponse(
        request=AdjustmentResponse.model_validate(result.request) if result.request is not None else None,
        side_effects=result.side_effects.to_list(),
    )


@router.post(
    "",
    response_model=AdjustmentActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create hours removal request",
)
async def create_request(
    request: AdjustmentCreateRequest,
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    result = await service.create_request(
        record_id=request.record_id,
        requester_id=request.requester_id,
        current_amount=request.current_amount,
        reason=request.reason,
    )
    return _action_response(result)


@router.get(
    "",
    response_model=AdjustmentListResponse,
    summary="List hours removal requests",
)
async def list_requests(
    record_id: Optional[UUID] = Query(None),
    status_filter: Optional[AdjustmentStatus] = Query(None, alias="status"),
    requester_id: Optional[UUID] = Query(None),
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    requests = await service.list_requests(record_id=record_id, status=status_filter, requester_id=requester_id)
    return AdjustmentListResponse(
        requests=[AdjustmentResponse.model_validate(item) for item in requests],
        total=len(requests),
    )


@router.get(
    "/statistics",
    response_model=AdjustmentStatisticsResponse,
    summary="Hours removal statistics",
)
async def get_statistics(service: ResourceAdjustmentService = Depends(get_adjustment_service)):
    return await service.get_statistics()


@router.get("/{request_id}", response_model=AdjustmentDetailResponse)
async def get_request(
    request_id: UUID,
    include_internal: bool = Query(True, description="Include internal comments"),
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    request = await service.get_request(request_id)
    comments = await service.get_comments(request_id, include_internal=include_internal)
    return AdjustmentDetailResponse(
        **AdjustmentResponse.model_validate(request).model_dump(),
        comments=[AdjustmentCommentResponse.model_validate(item) for item in comments],
    )


@router.post(
    "/{request_id}/comments",
    response_model=AdjustmentCommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on hours removal request",
)
async def add_comment(
    request_id: UUID,
    request: AdjustmentCommentRequest,
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    comment = await service.add_comment(
        request_id=request_id,
        user_id=request.user_id,
        comment=request.comment,
        parent_id=request.parent_id,
        is_internal=request.is_internal,
    )
    return AdjustmentCommentResponse.model_validate(comment)


@router.post(
    "/{request_id}/approve",
    response_model=AdjustmentActionResponse,
    summary="Approve hours removal",
    description="Approve a pending request and zero the record's allocated hours.",
)
async def approve_request(
    request_id: UUID,
    request: AdjustmentApproveRequest,
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    result = await service.approve_request(
        request_id=request_id,
        approver_id=request.approver_id,
        current_amount=request.current_amount,
        comments=request.comments,
    )
    return _action_response(result)


@router.post(
    "/{request_id}/reject",
    response_model=AdjustmentActionResponse,
    summary="Reject hours removal",
)
async def reject_request(
    request_id: UUID,
    request: AdjustmentRejectRequest,
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    result = await service.reject_request(
        request_id=request_id,
        approver_id=request.approver_id,
        reason=request.reason,
        current_amount=request.current_amount,
    )
    return _action_response(result)


@router.post(
    "/{request_id}/reverse",
    response_model=AdjustmentActionResponse,
    summary="Reverse a decision",
    description="Admin only. Returns a decided request to pending and restores the record.",
)
async def reverse_request(
    request_id: UUID,
    request: AdjustmentReverseRequest,
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    result = await service.reverse_request(
        request_id=request_id,
        admin_id=request.admin_id,
        reason=request.reason,
    )
    return _action_response(result)


@router.delete(
    "/{request_id}",
    response_model=AdjustmentActionResponse,
    summary="Delete hours removal request",
)
async def delete_request(
    request_id: UUID,
    admin_id: UUID = Query(..., description="Administrator performing the delete"),
    service: ResourceAdjustmentService = Depends(get_adjustment_service),
):
    result = await service.delete_request(request_id=request_id, admin_id=admin_id)
    return _action_response(result)
