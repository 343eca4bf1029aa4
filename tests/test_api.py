"""
RecordFlow - API Integration Tests

Integration tests for REST API endpoints.
"""

import csv
import io
import uuid

import pytest
from httpx import AsyncClient


async def start_workflow(client: AsyncClient, record_id) -> dict:
    response = await client.post(f"/api/v1/records/{record_id}/workflow")
    assert response.status_code == 201
    return {approval["stage_name"]: approval for approval in response.json()["approvals"]}


class TestHealthEndpoint:
    """Test health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["app"] == "RecordFlow"


@pytest.mark.asyncio
class TestApprovalAPI:
    """Workflow start, approval processing and reads."""

    async def test_start_workflow(self, client: AsyncClient, record, stages):
        response = await client.post(f"/api/v1/records/{record.id}/workflow", json={"amount": "1000"})

        assert response.status_code == 201
        data = response.json()
        assert data["started"] is True
        assert sorted(a["stage_name"] for a in data["approvals"]) == ["Commercial Review", "Technical Review"]
        assert all(a["status"] == "pending" for a in data["approvals"])
        assert all(effect["ok"] for effect in data["side_effects"])

    async def test_second_start_conflicts(self, client: AsyncClient, record, stages):
        await start_workflow(client, record.id)

        response = await client.post(f"/api/v1/records/{record.id}/workflow")

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "WORKFLOW_ALREADY_EXISTS"

    async def test_process_approval(self, client: AsyncClient, record, stages, notifier):
        approvals = await start_workflow(client, record.id)
        technical = approvals["Technical Review"]

        response = await client.post(
            f"/api/v1/records/{record.id}/approvals/{technical['id']}",
            json={"action": "approve", "actor_email": "manager@example.com", "comments": "Looks good"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["approval"]["status"] == "approved"
        assert data["record_status"] == "approved"
        assert data["workflow"]["is_complete"] is True
        assert data["workflow"]["outcome"] == "approved"
        assert data["workflow"]["completed_by"] == "approved"
        assert "approval_event" in notifier.names()

    async def test_permission_denied_shape(self, client: AsyncClient, record, stages):
        approvals = await start_workflow(client, record.id)

        response = await client.post(
            f"/api/v1/records/{record.id}/approvals/{approvals['Technical Review']['id']}",
            json={"action": "approve", "actor_email": "sales@example.com"},
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "PERMISSION_DENIED"
        assert "message" in detail
        assert "timestamp" in detail

    async def test_comment_required_shape(self, client: AsyncClient, record, stages):
        approvals = await start_workflow(client, record.id)

        response = await client.post(
            f"/api/v1/records/{record.id}/approvals/{approvals['Commercial Review']['id']}",
            json={"action": "reject", "actor_email": "manager@example.com"},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "COMMENT_REQUIRED"
        assert response.json()["detail"]["field"] == "comments"

    async def test_unknown_approval(self, client: AsyncClient, record, stages):
        await start_workflow(client, record.id)

        response = await client.post(
            f"/api/v1/records/{record.id}/approvals/{uuid.uuid4()}",
            json={"action": "approve", "actor_email": "manager@example.com"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "APPROVAL_NOT_FOUND"

    async def test_invalid_body(self, client: AsyncClient, record, stages):
        approvals = await start_workflow(client, record.id)

        response = await client.post(
            f"/api/v1/records/{record.id}/approvals/{approvals['Technical Review']['id']}",
            json={"action": "escalate", "actor_email": "not-an-email"},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert len(detail["details"]["errors"]) == 2

    async def test_workflow_with_permissions(self, client: AsyncClient, record, stages):
        await start_workflow(client, record.id)

        response = await client.get(
            f"/api/v1/records/{record.id}/workflow", params={"actor_email": "manager@example.com"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["record_status"] == "in_review"
        assert data["state"]["current_stage"]["name"] == "Technical Review"
        assert data["permissions"] == {"can_approve": True, "can_reject": True, "can_skip": False}

    async def test_stats_and_comments(self, client: AsyncClient, record, stages):
        await start_workflow(client, record.id)

        comment = await client.post(
            f"/api/v1/records/{record.id}/comments",
            json={"actor_email": "manager@example.com", "comment": "Waiting on pricing"},
        )
        assert comment.status_code == 201
        assert comment.json()["message"] == "Comment added"

        stats = (await client.get(f"/api/v1/records/{record.id}/approvals/stats")).json()
        assert stats["total"] == 2
        assert stats["pending"] == 2
        assert stats["workflow_status"] == "in_progress"


@pytest.mark.asyncio
class TestAdjustmentAPI:
    """Hours removal request lifecycle over HTTP."""

    async def _create(self, client: AsyncClient, record, users) -> dict:
        response = await client.post(
            "/api/v1/adjustments",
            json={
                "record_id": str(record.id),
                "requester_id": str(users["sales"].id),
                "current_amount": "40",
                "reason": "Customer descoped the delivery work",
            },
        )
        assert response.status_code == 201
        return response.json()["request"]

    async def test_full_lifecycle(self, client: AsyncClient, record, users):
        created = await self._create(client, record, users)
        assert created["status"] == "pending"

        approved = await client.post(
            f"/api/v1/adjustments/{created['id']}/approve",
            json={"approver_id": str(users["pmo"].id), "comments": "Agreed"},
        )
        assert approved.status_code == 200
        assert approved.json()["request"]["status"] == "approved"

        stats = (await client.get("/api/v1/adjustments/statistics")).json()
        assert stats["approved_requests"] == 1
        assert float(stats["total_hours_removed"]) == 40.0

        reversed_ = await client.post(
            f"/api/v1/adjustments/{created['id']}/reverse",
            json={"admin_id": str(users["admin"].id), "reason": "Approved in error"},
        )
        assert reversed_.status_code == 200
        assert reversed_.json()["request"]["status"] == "pending"
        assert reversed_.json()["request"]["reversal_reason"] == "Approved in error"

        deleted = await client.delete(
            f"/api/v1/adjustments/{created['id']}", params={"admin_id": str(users["admin"].id)}
        )
        assert deleted.status_code == 200
        assert deleted.json()["request"] is None

        missing = await client.get(f"/api/v1/adjustments/{created['id']}")
        assert missing.status_code == 404
        assert missing.json()["detail"]["code"] == "REQUEST_NOT_FOUND"

    async def test_duplicate_request_conflicts(self, client: AsyncClient, record, users):
        await self._create(client, record, users)

        response = await client.post(
            "/api/v1/adjustments",
            json={
                "record_id": str(record.id),
                "requester_id": str(users["sales"].id),
                "current_amount": "40",
                "reason": "Again",
            },
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_REQUEST"

    async def test_reject_requires_reviewer(self, client: AsyncClient, record, users):
        created = await self._create(client, record, users)

        response = await client.post(
            f"/api/v1/adjustments/{created['id']}/reject",
            json={"approver_id": str(users["manager"].id), "reason": "No"},
        )

        assert response.status_code == 403

    async def test_list_filters(self, client: AsyncClient, record, users):
        created = await self._create(client, record, users)

        pending = (await client.get("/api/v1/adjustments", params={"status": "pending"})).json()
        assert pending["total"] == 1
        assert pending["requests"][0]["id"] == created["id"]

        approved = (await client.get("/api/v1/adjustments", params={"status": "approved"})).json()
        assert approved["total"] == 0

    async def test_comments_thread_on_request(self, client: AsyncClient, record, users):
        created = await self._create(client, record, users)
        url = f"/api/v1/adjustments/{created['id']}/comments"

        first = await client.post(url, json={"user_id": str(users["pmo"].id), "comment": "Is phase two cancelled too?"})
        assert first.status_code == 201
        reply = await client.post(
            url,
            json={"user_id": str(users["sales"].id), "comment": "Yes", "parent_id": first.json()["id"]},
        )
        assert reply.status_code == 201
        internal = await client.post(
            url, json={"user_id": str(users["pmo"].id), "comment": "Check finance", "is_internal": True}
        )
        assert internal.json()["is_internal"] is True

        detail = (await client.get(f"/api/v1/adjustments/{created['id']}")).json()
        assert detail["status"] == "pending"
        assert [c["comment"] for c in detail["comments"]] == ["Is phase two cancelled too?", "Yes", "Check finance"]
        assert detail["comments"][1]["parent_id"] == first.json()["id"]

        public = (
            await client.get(f"/api/v1/adjustments/{created['id']}", params={"include_internal": "false"})
        ).json()
        assert [c["comment"] for c in public["comments"]] == ["Is phase two cancelled too?", "Yes"]

    async def test_blank_comment_rejected(self, client: AsyncClient, record, users):
        created = await self._create(client, record, users)

        response = await client.post(
            f"/api/v1/adjustments/{created['id']}/comments",
            json={"user_id": str(users["pmo"].id), "comment": "   "},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "COMMENT_REQUIRED"
        assert response.json()["detail"]["field"] == "comment"


@pytest.mark.asyncio
class TestAuditAPI:
    """Audit trail and changelog endpoints."""

    async def test_audit_trail_and_export(self, client: AsyncClient, record, stages):
        await start_workflow(client, record.id)

        trail = await client.get(f"/api/v1/records/{record.id}/audit-trail")
        assert trail.status_code == 200
        actions = [entry["action"] for entry in trail.json()["entries"]]
        assert "workflow_started" in actions

        filtered = await client.get(f"/api/v1/records/{record.id}/audit-trail", params={"action": "status_change"})
        assert all(entry["action"] == "status_change" for entry in filtered.json()["entries"])

        summary = await client.get(f"/api/v1/records/{record.id}/audit-trail/summary")
        assert summary.json()["total_actions"] == trail.json()["total"]

        export = await client.get(f"/api/v1/records/{record.id}/audit-trail/export")
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert "attachment" in export.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(export.text)))
        assert len(rows) == trail.json()["total"]

    async def test_changelog(self, client: AsyncClient, record, users):
        response = await client.post(
            f"/api/v1/records/{record.id}/changelog",
            json={
                "previous": {"title": "Acme rollout", "status": "draft"},
                "new": {"title": "Acme platform rollout", "status": "in_review"},
                "user_id": str(users["sales"].id),
            },
        )

        assert response.status_code == 201
        assert response.json()["total"] == 2

        status_only = await client.get(
            f"/api/v1/records/{record.id}/changelog", params={"change_type": "status_change"}
        )
        entries = status_only.json()["entries"]
        assert [entry["field_name"] for entry in entries] == ["status"]
        assert entries[0]["previous_value"] == "draft"

        summary = (await client.get(f"/api/v1/records/{record.id}/changelog/summary")).json()
        assert summary["total_changes"] == 2

        export = await client.get(f"/api/v1/records/{record.id}/changelog/export")
        assert export.headers["content-type"].startswith("text/csv")
