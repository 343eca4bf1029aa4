"""
RecordFlow - Email Service

Handles transactional email sending.
Supports SendGrid or SMTP, with a logging mock when neither is configured.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import List, Optional

import httpx

from recordflow.config import Settings

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailProvider:
    """Email provider types."""
    SMTP = "smtp"
    SENDGRID = "sendgrid"
    MOCK = "mock"


@dataclass
class EmailMessage:
    """Email message data structure."""
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    reply_to: Optional[str] = None


class EmailService:
    """Service for sending transactional emails."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.from_email = settings.mail_from
        self.from_name = settings.mail_from_name
        self.base_url = settings.base_url.rstrip("/")

        # SMTP settings
        self.smtp_host = settings.mail_server
        self.smtp_port = settings.mail_port
        self.smtp_username = settings.mail_username
        self.smtp_password = settings.mail_password
        self.smtp_use_tls = settings.mail_starttls

        # SendGrid settings
        self.sendgrid_api_key = settings.sendgrid_api_key

        self._http_client = http_client

    def _determine_provider(self) -> str:
        """Determine which email provider to use based on configuration."""
        if self.sendgrid_api_key:
            return EmailProvider.SENDGRID
        elif self.smtp_host:
            return EmailProvider.SMTP
        else:
            return EmailProvider.MOCK

    async def send_email(self, message: EmailMessage) -> bool:
        """
        Send an email using the configured provider.

        Returns False instead of raising when delivery fails.
        """
        provider = self._determine_provider()

        try:
            if provider == EmailProvider.SENDGRID:
                return await self._send_via_sendgrid(message)
            elif provider == EmailProvider.SMTP:
                return await self._send_via_smtp(message)
            else:
                return await self._send_mock(message)
        except Exception as e:
            logger.error(f"Failed to send email via {provider}: {e}")
            return False

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.post(url, **kwargs)

    async def _send_via_sendgrid(self, message: EmailMessage) -> bool:
        """Send email via SendGrid API."""
        payload = {
            "personalizations": [
                {
                    "to": [{"email": email} for email in message.to],
                }
            ],
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.body_text},
            ],
        }

        if message.body_html:
            payload["content"].append({
                "type": "text/html",
                "value": message.body_html,
            })

        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}

        response = await self._post(
            SENDGRID_URL,
            json=payload,
            headers={
                "Authorization": f"Bearer {self.sendgrid_api_key}",
                "Content-Type": "application/json",
            },
        )

        if response.status_code in [200, 202]:
            logger.info(f"Email sent via SendGrid to {message.to}")
            return True
        logger.error(f"SendGrid API error: {response.status_code} - {response.text}")
        return False

    def _smtp_send(self, message: EmailMessage) -> None:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = ', '.join(message.to)

        if message.reply_to:
            msg['Reply-To'] = message.reply_to

        msg.attach(MIMEText(message.body_text, 'plain'))
        if message.body_html:
            msg.attach(MIMEText(message.body_html, 'html'))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, message.to, msg.as_string())

    async def _send_via_smtp(self, message: EmailMessage) -> bool:
        """Send email via SMTP without blocking the event loop."""
        await asyncio.to_thread(self._smtp_send, message)
        logger.info(f"Email sent via SMTP to {message.to}")
        return True

    async def _send_mock(self, message: EmailMessage) -> bool:
        """Mock email sending for development."""
        logger.info(f"[MOCK EMAIL] To: {message.to} | Subject: {message.subject}")
        logger.debug(f"[MOCK EMAIL] Body: {message.body_text[:200]}...")
        return True

    # ===========================================
    # RESOURCE ADJUSTMENT TEMPLATES
    # ===========================================

    def request_url(self, request_id) -> str:
        return f"{self.base_url}/adjustments?id={request_id}"

    async def send_adjustment_request(
        self,
        to_email: str,
        request_id,
        record_title: str,
        client_name: str,
        requester_name: str,
        hours_to_remove,
        reason: str,
    ) -> bool:
        """Ask a reviewer to approve removal of a record's allocated hours."""
        subject = f"Hours Removal Request: {record_title}"
        url = self.request_url(request_id)

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #f59e0b;">Hours Removal Request</h2>
                <div style="background-color: #fef3c7; padding: 20px; border-radius: 8px; margin: 20px 0;">
                    <h3 style="margin-top: 0;">{escape(record_title)}</h3>
                    <p><strong>Client:</strong> {escape(client_name)}</p>
                    <p><strong>Requested by:</strong> {escape(requester_name)}</p>
                    <p><strong>Hours to remove:</strong> {hours_to_remove}</p>
                    <p><strong>Reason:</strong> {escape(reason)}</p>
                </div>
                <p>
                    <a href="{url}"
                       style="display: inline-block; background-color: #f59e0b; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">
                        Review Request
                    </a>
                </p>
                <p style="color: #6b7280; font-size: 14px;">This hours removal request requires your approval.</p>
            </div>
        </body>
        </html>
        """

        body_text = f"""
        Hours Removal Request: {record_title}

        Client: {client_name}
        Requested by: {requester_name}
        Hours to remove: {hours_to_remove}
        Reason: {reason}

        Review the request: {url}
        """

        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=subject,
            body_text=body_text,
            body_html=body_html,
        ))

    async def send_adjustment_decision(
        self,
        to_email: str,
        request_id,
        record_title: str,
        approved: bool,
        approver_name: str,
        hours_to_remove,
        comments: Optional[str] = None,
    ) -> bool:
        """Tell the requester their hours removal request was decided."""
        outcome = "approved" if approved else "rejected"
        color = "#16a34a" if approved else "#dc2626"
        subject = f"Hours Removal Request {outcome.capitalize()}: {record_title}"
        url = self.request_url(request_id)
        comment_html = f"<p><strong>Comments:</strong> {escape(comments)}</p>" if comments else ""

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: {color};">Hours Removal Request {outcome.capitalize()}</h2>
                <h3>{escape(record_title)}</h3>
                <p><strong>{outcome.capitalize()} by:</strong> {escape(approver_name)}</p>
                <p><strong>Hours:</strong> {hours_to_remove}</p>
                {comment_html}
                <p><a href="{url}">View request</a></p>
            </div>
        </body>
        </html>
        """

        body_text = f"""
        Your hours removal request for "{record_title}" was {outcome} by {approver_name}.

        Hours: {hours_to_remove}
        {f"Comments: {comments}" if comments else ""}

        View request: {url}
        """

        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=subject,
            body_text=body_text,
            body_html=body_html,
        ))
