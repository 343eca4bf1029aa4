"""
RecordFlow - Services Package

Workflow, audit and notification services.
"""

from recordflow.services.side_effects import SideEffectReport, SideEffectResult
from recordflow.services.directory import DirectoryUser, UserDirectory
from recordflow.services.audit_service import AuditService
from recordflow.services.changelog_service import ChangelogService
from recordflow.services.email_service import EmailService
from recordflow.services.notification_service import NotificationService
from recordflow.services.approval_service import ApprovalService
from recordflow.services.adjustment_service import ResourceAdjustmentService

__all__ = [
    "SideEffectReport",
    "SideEffectResult",
    "DirectoryUser",
    "UserDirectory",
    "AuditService",
    "ChangelogService",
    "EmailService",
    "NotificationService",
    "ApprovalService",
    "ResourceAdjustmentService",
]
