"""
RecordFlow - FastAPI Dependencies

Shared dependencies for database sessions and workflow services.

This module provides dependency injection for:
1. The session factory and per-request database session
2. Application settings
3. The notification service created at startup
4. Service instances wired from the above
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recordflow.config import Settings, get_settings
from recordflow.database import async_session_maker
from recordflow.services.adjustment_service import ResourceAdjustmentService
from recordflow.services.approval_service import ApprovalService
from recordflow.services.audit_service import AuditService
from recordflow.services.changelog_service import ChangelogService
from recordflow.services.directory import UserDirectory
from recordflow.services.notification_service import NotificationService
from recordflow.store import RecordStore


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory stored on app.state, falling back to the default engine."""
    return getattr(request.app.state, "session_factory", async_session_maker)


async def get_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


def get_notifier(request: Request, settings: Settings = Depends(get_settings)) -> NotificationService:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = NotificationService(settings)
        request.app.state.notifier = notifier
    return notifier


def get_audit_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AuditService:
    return AuditService(session_factory)


def get_changelog_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ChangelogService:
    return ChangelogService(session_factory)


def get_approval_service(
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit_service),
    notifier: NotificationService = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> ApprovalService:
    return ApprovalService(
        store=RecordStore(session),
        directory=UserDirectory(session),
        audit=audit,
        notifier=notifier,
        settings=settings,
    )


def get_adjustment_service(
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit_service),
    notifier: NotificationService = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> ResourceAdjustmentService:
    return ResourceAdjustmentService(
        store=RecordStore(session),
        directory=UserDirectory(session),
        audit=audit,
        notifier=notifier,
        settings=settings,
    )
