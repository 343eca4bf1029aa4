"""
RecordFlow - Test Configuration

Pytest fixtures and configuration.

Each test gets its own file-backed SQLite database so that the audit and
changelog services, which write through their own sessions, see the same
data as the workflow services.
"""

from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import recordflow.models  # noqa: F401
from recordflow.config import Settings, get_settings
from recordflow.database import Base
from recordflow.dependencies import get_notifier, get_session_factory
from recordflow.models.approval import ApprovalStage
from recordflow.models.record import ReviewRecord
from recordflow.models.user import User, UserRole
from recordflow.services.adjustment_service import ResourceAdjustmentService
from recordflow.services.approval_service import ApprovalService
from recordflow.services.audit_service import AuditService
from recordflow.services.changelog_service import ChangelogService
from recordflow.services.directory import UserDirectory
from recordflow.store import RecordStore
from main import app


class RecordingNotifier:
    """Notification double that records every call; set fail=True to make calls raise."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.fail = False

    async def _record(self, name: str, **kwargs) -> bool:
        self.calls.append({"name": name, **kwargs})
        if self.fail:
            raise RuntimeError(f"{name} unavailable")
        return True

    def names(self) -> List[str]:
        return [call["name"] for call in self.calls]

    async def send_approval_event(self, **kwargs) -> bool:
        return await self._record("approval_event", **kwargs)

    async def send_approval_requested(self, **kwargs) -> bool:
        return await self._record("approval_requested", **kwargs)

    async def send_request_created(self, **kwargs) -> bool:
        return await self._record("request_created", **kwargs)

    async def send_request_approved(self, **kwargs) -> bool:
        return await self._record("request_approved", **kwargs)

    async def send_request_rejected(self, **kwargs) -> bool:
        return await self._record("request_rejected", **kwargs)


class FailingSessionFactory:
    """Session factory whose sessions cannot be opened."""

    def __call__(self):
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def failing_session_factory() -> FailingSessionFactory:
    return FailingSessionFactory()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="testing",
        database_url_async="sqlite+aiosqlite://",
        slack_webhook_url=None,
        sendgrid_api_key=None,
        mail_server=None,
        default_stage_names="Approval Required",
        default_stage_limit=3,
        adjustment_reviewer_role="pmo",
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'recordflow_test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit_service(session_factory) -> AuditService:
    return AuditService(session_factory)


@pytest.fixture
def changelog_service(session_factory) -> ChangelogService:
    return ChangelogService(session_factory)


@pytest.fixture
def approval_service(db_session, audit_service, notifier, test_settings) -> ApprovalService:
    return ApprovalService(
        store=RecordStore(db_session),
        directory=UserDirectory(db_session),
        audit=audit_service,
        notifier=notifier,
        settings=test_settings,
    )


@pytest.fixture
def adjustment_service(db_session, audit_service, notifier, test_settings) -> ResourceAdjustmentService:
    return ResourceAdjustmentService(
        store=RecordStore(db_session),
        directory=UserDirectory(db_session),
        audit=audit_service,
        notifier=notifier,
        settings=test_settings,
    )


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> Dict[str, User]:
    """One user per interesting role, keyed by role name."""
    people = {
        "admin": User(email="admin@example.com", name="Ada Admin", role=UserRole.ADMIN.value),
        "manager": User(email="manager@example.com", name="Max Manager", role=UserRole.MANAGER.value),
        # Legacy rows store roles in mixed case
        "pmo": User(email="pmo@example.com", name="Pat Pmo", role="PMO"),
        "sales": User(email="sales@example.com", name="Sam Sales", role=UserRole.SALES.value),
        "user": User(email="user@example.com", name="Uma User", role=UserRole.USER.value),
    }
    db_session.add_all(people.values())
    await db_session.commit()
    return people


@pytest_asyncio.fixture
async def record(db_session: AsyncSession, users) -> ReviewRecord:
    item = ReviewRecord(
        title="Acme platform rollout",
        client_name="Acme Corp",
        content="Phase one covers discovery and design.",
        opportunity_amount=Decimal("50000.00"),
        allocated_hours=Decimal("40.00"),
        author_id=users["sales"].id,
    )
    db_session.add(item)
    await db_session.commit()
    return item


@pytest_asyncio.fixture
async def stages(db_session: AsyncSession) -> List[ApprovalStage]:
    items = [
        ApprovalStage(name="Technical Review", sort_order=1, is_active=True),
        ApprovalStage(name="Commercial Review", sort_order=2, is_active=True, requires_comment=True),
    ]
    db_session.add_all(items)
    await db_session.commit()
    return items


@pytest_asyncio.fixture
async def client(session_factory, notifier, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the per-test database and notifier."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
