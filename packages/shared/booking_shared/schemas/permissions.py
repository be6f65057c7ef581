"""Permission and grant schemas: access decisions, accessible targets, role grants."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, Field

from .common import CalendarRoleType, TargetType


class AccessDecisionRead(BaseModel):
    target_type: TargetType
    target_id: uuid.UUID
    level: str
    can_review: bool = False
    rule: str


class OrganizationSummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    granular_resource_permissions: bool
    granular_calendar_permissions: bool

    model_config = {"from_attributes": True}


class OrganizationListResponse(BaseModel):
    data: list[OrganizationSummary]


class CalendarSummary(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    level: str
    can_review: bool = False


class CalendarListResponse(BaseModel):
    data: list[CalendarSummary]


class CalendarRoleAssignRequest(BaseModel):
    user_id: uuid.UUID
    role: CalendarRoleType = CalendarRoleType.REVIEWER


class CalendarRoleRead(BaseModel):
    reservation_calendar_id: uuid.UUID
    user_id: uuid.UUID
    role: CalendarRoleType
    is_auto_assigned_from_org_admin: bool = False
    assigned_by_id: Optional[uuid.UUID] = None

    model_config = {"from_attributes": True}


class OrganizationAdminRead(BaseModel):
    organization_id: uuid.UUID
    user_id: uuid.UUID
    assigned_by_id: Optional[uuid.UUID] = None
    auto_assigned_calendar_ids: list[uuid.UUID] = Field(default_factory=list)
