"""
RecordFlow - Approval Permissions

Pure role-based permission model for the review workflow. No I/O.

Approval Permission Matrix:
===========================

| Permission       | admin | manager | pmo | sales | pro_services | solution_consultant | user |
|------------------|-------|---------|-----|-------|--------------|---------------------|------|
| approve          | X     | X       |     |       |              |                     |      |
| reject           | X     | X       |     |       |              |                     |      |
| skip             |       |         |     |       |              |                     |      |

Nobody may skip a stage. Stage assignments are informational and do not
change the matrix.

Resource-adjustment actions:
- approve / reject: the configured reviewer role (default pmo) or admin
- reverse / delete: admin only
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set, Union

from recordflow.models.approval import ApprovalAction
from recordflow.models.user import UserRole


class ApprovalPermission(str, Enum):
    """Permissions on a pending approval."""
    APPROVE = "approve"
    REJECT = "reject"
    SKIP = "skip"


ROLE_APPROVAL_PERMISSIONS: Dict[str, Set[ApprovalPermission]] = {
    UserRole.ADMIN.value: {ApprovalPermission.APPROVE, ApprovalPermission.REJECT},
    UserRole.MANAGER.value: {ApprovalPermission.APPROVE, ApprovalPermission.REJECT},
}


@dataclass(frozen=True)
class ApprovalPermissions:
    """Effective permissions of one actor on the current stage."""
    can_approve: bool = False
    can_reject: bool = False
    can_skip: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "can_approve": self.can_approve,
            "can_reject": self.can_reject,
            "can_skip": self.can_skip,
        }


def normalize_role(role: Optional[str]) -> str:
    """Lowercase and strip a directory role; missing roles become 'user'."""
    if not role:
        return UserRole.USER.value
    return str(role).strip().lower()


def calculate_permissions(role: Optional[str], current_stage: Any = None) -> ApprovalPermissions:
    """
    Compute the approval permissions for a role.

    current_stage is accepted for call-site symmetry with the workflow
    resolver; it does not affect the result.
    """
    granted = ROLE_APPROVAL_PERMISSIONS.get(normalize_role(role), set())
    return ApprovalPermissions(
        can_approve=ApprovalPermission.APPROVE in granted,
        can_reject=ApprovalPermission.REJECT in granted,
        can_skip=ApprovalPermission.SKIP in granted,
    )


def is_action_allowed(permissions: ApprovalPermissions, action: Union[ApprovalAction, str]) -> bool:
    """Check whether the permissions allow an approval action."""
    action = ApprovalAction(action)
    if action == ApprovalAction.APPROVE:
        return permissions.can_approve
    if action == ApprovalAction.REJECT:
        return permissions.can_reject
    return permissions.can_skip


# ===========================================
# RESOURCE ADJUSTMENT
# ===========================================

def is_admin(role: Optional[str]) -> bool:
    return normalize_role(role) == UserRole.ADMIN.value


def can_review_adjustments(role: Optional[str], reviewer_role: str = UserRole.PMO.value) -> bool:
    """Reviewer-role members and admins may approve or reject adjustment requests."""
    normalized = normalize_role(role)
    return normalized == normalize_role(reviewer_role) or normalized == UserRole.ADMIN.value
