"""
RecordFlow - User Directory

Lookup of users by email, id and role. Results are returned as detached
DirectoryUser values with the role normalised to lowercase, so the rest
of the workflow compares plain strings and never writes back to the
directory table.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recordflow.models.user import User
from recordflow.utils.permissions import normalize_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    id: UUID
    email: str
    name: str
    role: str

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @classmethod
    def from_model(cls, user: User) -> "DirectoryUser":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name or "",
            role=normalize_role(user.role),
        )


class UserDirectory:
    """Read-only access to directory users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_user_by_email(self, email: str) -> Optional[DirectoryUser]:
        """Find a user by email, case-insensitively."""
        if not email or not email.strip():
            return None
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        user = result.scalars().first()
        return DirectoryUser.from_model(user) if user else None

    async def get_user(self, user_id: Optional[UUID]) -> Optional[DirectoryUser]:
        if user_id is None:
            return None
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        return DirectoryUser.from_model(user) if user else None

    async def get_users(self, user_ids: Iterable[Optional[UUID]]) -> Dict[UUID, DirectoryUser]:
        """Fetch several users keyed by id; unknown ids are omitted."""
        ids = {user_id for user_id in user_ids if user_id is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: DirectoryUser.from_model(user) for user in result.scalars().all()}

    async def find_users_by_role(self, role: str) -> List[DirectoryUser]:
        """Active users holding a role, oldest first."""
        result = await self.db.execute(
            select(User)
            .where(func.lower(User.role) == normalize_role(role))
            .where(User.is_active.is_(True))
            .order_by(User.created_at, User.email)
        )
        users = [DirectoryUser.from_model(user) for user in result.scalars().all()]
        logger.debug(f"Directory lookup for role '{role}' returned {len(users)} users")
        return users
