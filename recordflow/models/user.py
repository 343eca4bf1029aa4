"""
RecordFlow - User Model

Directory users. Roles are stored as free strings because the directory
is shared with other systems; they are normalised to lowercase when read
through the directory service.
"""

from enum import Enum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from recordflow.models.base import BaseModel


class UserRole(str, Enum):
    """Roles known to the review workflow."""
    USER = "user"
    SALES = "sales"
    PRO_SERVICES = "pro_services"
    SOLUTION_CONSULTANT = "solution_consultant"
    MANAGER = "manager"
    PMO = "pmo"
    ADMIN = "admin"


class User(BaseModel):
    """A person who authors, reviews or approves records."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=UserRole.USER.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
