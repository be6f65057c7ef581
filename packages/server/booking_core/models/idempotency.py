"""Idempotency records: one row per (key, scope, user) logical request."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class IdempotencyRecord(UUIDMixin, SQLModel, table=True):
    __tablename__ = "idempotency_records"
    __table_args__ = (
        sa.UniqueConstraint("key", "scope", "user_id", name="uq_idempotency_key_scope_user"),
    )

    key: str = Field(nullable=False, max_length=128)
    scope: str = Field(nullable=False)
    # Not a foreign key: public requests use a fixed sentinel identity
    user_id: uuid.UUID = Field(nullable=False)
    payload_fingerprint: str = Field(nullable=False)
    status: str = Field(default="in_progress", nullable=False)
    stored_result: Optional[dict] = Field(
        default=None, sa_type=sa.JSON().with_variant(JSONB(), "postgresql")
    )
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    expires_at: datetime = Field(nullable=False, index=True, sa_type=sa.DateTime(timezone=True))
