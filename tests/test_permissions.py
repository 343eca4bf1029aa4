"""
RecordFlow - Permission Calculator Tests
"""

import pytest

from recordflow.models.approval import ApprovalAction, ApprovalStage
from recordflow.utils.permissions import (
    ApprovalPermissions,
    calculate_permissions,
    can_review_adjustments,
    is_action_allowed,
    is_admin,
    normalize_role,
)


class TestCalculatePermissions:
    """Role matrix for approval actions."""

    @pytest.mark.parametrize("role", ["admin", "manager", "ADMIN", " Manager "])
    def test_approvers_can_approve_and_reject(self, role):
        permissions = calculate_permissions(role)
        assert permissions.can_approve is True
        assert permissions.can_reject is True
        assert permissions.can_skip is False

    @pytest.mark.parametrize("role", ["pmo", "sales", "pro_services", "solution_consultant", "user"])
    def test_other_roles_have_no_permissions(self, role):
        assert calculate_permissions(role) == ApprovalPermissions()

    @pytest.mark.parametrize("role", [None, "", "unknown-role"])
    def test_missing_or_unknown_role_is_denied(self, role):
        assert calculate_permissions(role) == ApprovalPermissions()

    def test_current_stage_does_not_change_result(self):
        stage = ApprovalStage(name="Technical Review", sort_order=1, assigned_role="sales")
        assert calculate_permissions("sales", stage) == calculate_permissions("sales")
        assert calculate_permissions("admin", stage) == calculate_permissions("admin")

    def test_nobody_can_skip(self):
        for role in ["admin", "manager", "pmo", "sales", "user"]:
            assert not is_action_allowed(calculate_permissions(role), ApprovalAction.SKIP)

    def test_to_dict(self):
        assert calculate_permissions("admin").to_dict() == {
            "can_approve": True,
            "can_reject": True,
            "can_skip": False,
        }


class TestActionAllowed:

    def test_accepts_action_strings(self):
        permissions = calculate_permissions("manager")
        assert is_action_allowed(permissions, "approve")
        assert is_action_allowed(permissions, "reject")
        assert not is_action_allowed(permissions, "skip")

    def test_unknown_action_raises(self):
        with pytest.raises(ValueError):
            is_action_allowed(calculate_permissions("admin"), "escalate")


class TestAdjustmentRoles:

    def test_normalize_role(self):
        assert normalize_role(" PMO ") == "pmo"
        assert normalize_role(None) == "user"

    def test_is_admin(self):
        assert is_admin("Admin")
        assert not is_admin("manager")

    def test_reviewer_role_and_admin_can_review(self):
        assert can_review_adjustments("pmo")
        assert can_review_adjustments("PMO")
        assert can_review_adjustments("admin")
        assert not can_review_adjustments("manager")

    def test_reviewer_role_is_configurable(self):
        assert can_review_adjustments("manager", reviewer_role="manager")
        assert not can_review_adjustments("pmo", reviewer_role="manager")
