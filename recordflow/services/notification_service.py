"""
RecordFlow - Notification Service

Outbound notifications for workflow events:
- Slack incoming-webhook messages for approval events
- Email for resource-adjustment requests and decisions

NotificationService is constructed once at application startup (see
main.py lifespan) and injected into the workflow services. Every method
reports delivery as a bool and never raises for delivery problems; the
workflow services additionally wrap calls as best-effort side effects.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx
from email_validator import EmailNotValidError, validate_email

from recordflow.config import Settings
from recordflow.services.email_service import EmailService

logger = logging.getLogger(__name__)


ACTION_EMOJI = {
    "approved": ":white_check_mark:",
    "rejected": ":x:",
    "skipped": ":fast_forward:",
}


def is_valid_email(address: Optional[str]) -> bool:
    """Syntax-only email check; no DNS lookups."""
    if not address:
        return False
    try:
        validate_email(address, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


class SlackNotifier:
    """Posts messages to a Slack incoming webhook."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = settings.slack_webhook_url
        self.channel = settings.slack_channel
        self.username = settings.slack_username
        self.icon_emoji = settings.slack_icon_emoji
        self.timeout = settings.slack_timeout_seconds
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    async def send_blocks(self, blocks: List[Dict[str, Any]], text: str) -> bool:
        """Send a block-kit message; text is the notification fallback."""
        payload: Dict[str, Any] = {
            "text": text,
            "blocks": blocks,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
        if self.channel:
            payload["channel"] = self.channel

        if not self.is_configured:
            logger.info(f"[MOCK SLACK] {text}")
            return True

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.webhook_url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Slack webhook request failed: {e}")
            return False

        if response.is_success:
            return True
        logger.error(f"Slack webhook error: {response.status_code} - {response.text}")
        return False


class NotificationService:
    """Workflow notifications over Slack and email."""

    def __init__(
        self,
        settings: Settings,
        slack: Optional[SlackNotifier] = None,
        email: Optional[EmailService] = None,
    ):
        self.base_url = settings.base_url.rstrip("/")
        self.slack = slack or SlackNotifier(settings)
        self.email = email or EmailService(settings)

    def record_url(self, record_id) -> str:
        return f"{self.base_url}/records/{record_id}"

    # ===========================================
    # SLACK
    # ===========================================

    def build_approval_blocks(
        self,
        record_id,
        title: str,
        client: Optional[str],
        stage: str,
        actor_name: str,
        outcome: str,
        comments: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"Record {outcome.capitalize()}", "emoji": True},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Record:*\n{title or 'Untitled'}"},
                    {"type": "mrkdwn", "text": f"*Client:*\n{client or 'Unknown'}"},
                ],
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Stage:*\n{stage}"},
                    {"type": "mrkdwn", "text": f"*Approver:*\n{actor_name}"},
                ],
            },
        ]
        if comments:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Comments:*\n{comments}"},
            })
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        blocks.append({
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{ACTION_EMOJI.get(outcome, '')} Record {outcome} at {timestamp}"},
            ],
        })
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Record", "emoji": True},
                    "style": "primary",
                    "url": self.record_url(record_id),
                },
            ],
        })
        return blocks

    async def send_approval_event(
        self,
        record_id,
        title: str,
        client: Optional[str],
        stage: str,
        actor_name: str,
        outcome: str,
        comments: Optional[str] = None,
    ) -> bool:
        """Announce an approval decision on a record."""
        blocks = self.build_approval_blocks(record_id, title, client, stage, actor_name, outcome, comments)
        return await self.slack.send_blocks(blocks, text=f"Record {outcome}: {title or 'Untitled'}")

    async def send_approval_requested(
        self,
        record_id,
        title: str,
        client: Optional[str],
        stages: Sequence[str],
        amount: Optional[Any] = None,
    ) -> bool:
        """Announce that a record was submitted for approval."""
        fields = [
            {"type": "mrkdwn", "text": f"*Stages:*\n{', '.join(stages) or 'Approval Required'}"},
        ]
        if amount:
            fields.append({"type": "mrkdwn", "text": f"*Amount:*\n{amount}"})
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "Record Approval Required", "emoji": True},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Record:*\n{title or 'Untitled'}"},
                    {"type": "mrkdwn", "text": f"*Client:*\n{client or 'Unknown'}"},
                ],
            },
            {"type": "section", "fields": fields},
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Review Record", "emoji": True},
                        "url": self.record_url(record_id),
                    },
                ],
            },
        ]
        return await self.slack.send_blocks(blocks, text=f"Record submitted for approval: {title or 'Untitled'}")

    # ===========================================
    # EMAIL
    # ===========================================

    async def send_request_created(
        self,
        request_id,
        record_title: str,
        client_name: Optional[str],
        requester_name: str,
        hours_to_remove,
        reason: str,
        reviewer_emails: Sequence[str],
    ) -> bool:
        """
        Email every reviewer with a valid address.

        Returns False when any delivery failed; invalid addresses are
        skipped with a warning.
        """
        recipients = []
        for address in reviewer_emails:
            if is_valid_email(address):
                recipients.append(address)
            else:
                logger.warning(f"Skipping invalid reviewer email '{address}' for request {request_id}")

        if not recipients:
            logger.warning(f"No reviewer with a valid email for adjustment request {request_id}")
            return True

        delivered = True
        for address in recipients:
            sent = await self.email.send_adjustment_request(
                to_email=address,
                request_id=request_id,
                record_title=record_title or "Untitled",
                client_name=client_name or "Unknown",
                requester_name=requester_name,
                hours_to_remove=hours_to_remove,
                reason=reason,
            )
            if not sent:
                logger.error(f"Adjustment request email to {address} failed for request {request_id}")
                delivered = False
        return delivered

    async def send_request_approved(
        self,
        request_id,
        record_title: str,
        requester_email: Optional[str],
        approver_name: str,
        hours_to_remove,
        comments: Optional[str] = None,
    ) -> bool:
        if not is_valid_email(requester_email):
            logger.warning(f"No valid requester email for adjustment request {request_id}")
            return True
        return await self.email.send_adjustment_decision(
            to_email=requester_email,
            request_id=request_id,
            record_title=record_title or "Untitled",
            approved=True,
            approver_name=approver_name,
            hours_to_remove=hours_to_remove,
            comments=comments,
        )

    async def send_request_rejected(
        self,
        request_id,
        record_title: str,
        requester_email: Optional[str],
        approver_name: str,
        hours_to_remove,
        reason: Optional[str] = None,
    ) -> bool:
        if not is_valid_email(requester_email):
            logger.warning(f"No valid requester email for adjustment request {request_id}")
            return True
        return await self.email.send_adjustment_decision(
            to_email=requester_email,
            request_id=request_id,
            record_title=record_title or "Untitled",
            approved=False,
            approver_name=approver_name,
            hours_to_remove=hours_to_remove,
            comments=reason,
        )
