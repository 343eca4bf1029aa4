"""
RecordFlow - Audit and Changelog Schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ===========================================
# AUDIT TRAIL
# ===========================================

class AuditEntryResponse(BaseModel):
    id: UUID
    record_id: UUID
    approval_id: Optional[UUID] = None
    request_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    action: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    comments: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditTrailResponse(BaseModel):
    record_id: UUID
    entries: List[AuditEntryResponse]
    total: int


class AuditSummaryResponse(BaseModel):
    record_id: UUID
    total_actions: int
    by_action: Dict[str, int]
    by_user: Dict[str, int]
    timeline: List[Dict[str, Any]]


# ===========================================
# CHANGELOG
# ===========================================

class FieldChangesRequest(BaseModel):
    """Before and after snapshots of a record save."""
    previous: Dict[str, Any]
    new: Dict[str, Any]
    user_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None


class ChangelogEntryResponse(BaseModel):
    id: UUID
    record_id: UUID
    user_id: Optional[UUID] = None
    action: str
    field_name: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: str
    diff_summary: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    version: Optional[int] = None
    parent_version_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChangelogResponse(BaseModel):
    record_id: UUID
    entries: List[ChangelogEntryResponse]
    total: int


class ChangelogSummaryResponse(BaseModel):
    record_id: UUID
    total_changes: int
    by_type: Dict[str, int]
    by_user: Dict[str, int]
    by_field: Dict[str, int]
    timeline: List[Dict[str, Any]]
