"""Organization admin grants and memberships."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class OrganizationAdmin(SQLModel, table=True):
    __tablename__ = "organization_admins"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", primary_key=True, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    assigned_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    assigned_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


class OrganizationMembership(SQLModel, table=True):
    __tablename__ = "organization_memberships"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", primary_key=True, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    role: str = Field(nullable=False, default="member")  # member | admin
