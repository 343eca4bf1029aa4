"""
RecordFlow - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from recordflow.models.base import BaseModel, TimestampMixin, utcnow
from recordflow.models.user import User, UserRole
from recordflow.models.record import ReviewRecord, RecordStatus
from recordflow.models.approval import (
    ApprovalAction,
    ApprovalRecord,
    ApprovalRule,
    ApprovalStage,
    ApprovalStatus,
)
from recordflow.models.adjustment import AdjustmentComment, ResourceAdjustmentRequest, AdjustmentStatus
from recordflow.models.audit import AuditLogEntry, AuditAction
from recordflow.models.changelog import ChangelogEntry, ChangelogAction, ChangeType

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "utcnow",
    "User",
    "UserRole",
    "ReviewRecord",
    "RecordStatus",
    "ApprovalAction",
    "ApprovalRecord",
    "ApprovalRule",
    "ApprovalStage",
    "ApprovalStatus",
    "ResourceAdjustmentRequest",
    "AdjustmentStatus",
    "AdjustmentComment",
    "AuditLogEntry",
    "AuditAction",
    "ChangelogEntry",
    "ChangelogAction",
    "ChangeType",
]
