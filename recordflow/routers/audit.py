"""
RecordFlow - Audit Trail and Changelog Router

Read and export endpoints for a record's audit trail, plus the changelog
write that callers make after saving a record.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from recordflow.dependencies import get_audit_service, get_changelog_service
from recordflow.schemas.audit import (
    AuditEntryResponse,
    AuditSummaryResponse,
    AuditTrailResponse,
    ChangelogEntryResponse,
    ChangelogResponse,
    ChangelogSummaryResponse,
    FieldChangesRequest,
)
from recordflow.services.audit_service import AuditService, AuditTrailFilters
from recordflow.services.changelog_service import ChangelogFilters, ChangelogService


router = APIRouter()


def _csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ===========================================
# AUDIT TRAIL
# ===========================================

@router.get(
    "/{record_id}/audit-trail",
    response_model=AuditTrailResponse,
    summary="Get audit trail",
)
async def get_audit_trail(
    record_id: UUID,
    action: Optional[str] = Query(None),
    user_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: AuditService = Depends(get_audit_service),
):
    """Audit entries for a record, newest first."""
    entries = await service.get_audit_trail(
        record_id,
        AuditTrailFilters(action=action, user_id=user_id, start_date=start_date, end_date=end_date),
    )
    return AuditTrailResponse(
        record_id=record_id,
        entries=[AuditEntryResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )


@router.get("/{record_id}/audit-trail/summary", response_model=AuditSummaryResponse)
async def get_audit_summary(
    record_id: UUID,
    service: AuditService = Depends(get_audit_service),
):
    return await service.get_audit_summary(record_id)


@router.get("/{record_id}/audit-trail/export", summary="Export audit trail as CSV")
async def export_audit_trail(
    record_id: UUID,
    service: AuditService = Depends(get_audit_service),
):
    content = await service.export_audit_trail_csv(record_id)
    return _csv_response(content, f"audit_trail_{record_id}.csv")


# ===========================================
# CHANGELOG
# ===========================================

@router.post(
    "/{record_id}/changelog",
    response_model=ChangelogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log field changes",
    description="Diff two snapshots of a record and store one entry per changed field.",
)
async def log_field_changes(
    record_id: UUID,
    request: FieldChangesRequest,
    service: ChangelogService = Depends(get_changelog_service),
):
    entries = await service.log_field_changes(
        record_id=record_id,
        previous=request.previous,
        new=request.new,
        user_id=request.user_id,
        metadata=request.metadata,
    )
    return ChangelogResponse(
        record_id=record_id,
        entries=[ChangelogEntryResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )


@router.get("/{record_id}/changelog", response_model=ChangelogResponse, summary="Get changelog")
async def get_changelog(
    record_id: UUID,
    change_type: Optional[str] = Query(None),
    field_name: Optional[str] = Query(None),
    user_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: ChangelogService = Depends(get_changelog_service),
):
    entries = await service.get_changelog(
        record_id,
        ChangelogFilters(
            change_type=change_type,
            field_name=field_name,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
        ),
    )
    return ChangelogResponse(
        record_id=record_id,
        entries=[ChangelogEntryResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )


@router.get("/{record_id}/changelog/summary", response_model=ChangelogSummaryResponse)
async def get_changelog_summary(
    record_id: UUID,
    service: ChangelogService = Depends(get_changelog_service),
):
    return await service.get_changelog_summary(record_id)


@router.get("/{record_id}/changelog/export", summary="Export changelog as CSV")
async def export_changelog(
    record_id: UUID,
    service: ChangelogService = Depends(get_changelog_service),
):
    content = await service.export_changelog_csv(record_id)
    return _csv_response(content, f"changelog_{record_id}.csv")
