"""
Organization-hierarchy schemas shared between server and clients.

Covers: cascade deletion previews and results for organizations,
resource types and resources.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CascadeTarget(str, Enum):
    ORGANIZATION = "organization"
    RESOURCE_TYPE = "resource_type"
    RESOURCE = "resource"


class CascadeDeletePreview(BaseModel):
    target: CascadeTarget
    name: str
    resource_types: int = 0
    resources: int = 0
    reservations: int = 0
    reservation_calendars: int = 0
    details: list[str] = Field(default_factory=list)

    @property
    def total_items(self) -> int:
        # +1 for the target itself (resource-type/resource counts already include it)
        extra = 1 if self.target == CascadeTarget.ORGANIZATION else 0
        return (
            self.resource_types
            + self.resources
            + self.reservations
            + self.reservation_calendars
            + extra
        )


class CascadeDeleteResult(BaseModel):
    success: bool
    message: str
    preview: CascadeDeletePreview
