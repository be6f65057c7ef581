"""User model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)
    display_name: str = Field(nullable=False)
    # Platform-wide super-admin: admin on every target
    is_super_admin: bool = Field(default=False, nullable=False)
