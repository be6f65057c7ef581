"""Organization model."""

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    # Opt-in: explicit per-user grants replace blanket membership access
    granular_resource_permissions: bool = Field(default=False, nullable=False)
    granular_calendar_permissions: bool = Field(default=False, nullable=False)
