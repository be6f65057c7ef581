"""
Permission resolver: the hierarchical access decision.

Rules are evaluated in order and the first one that matches decides:

1. super-admin                       -> ADMIN everywhere
2. organization admin                -> ADMIN on the org, its resource types and
                                        resources; EDIT (+review) on its calendars
3. calendar role (calendar targets)  -> editor: EDIT, reviewer: VIEW (+review)
4. granular flag on for the target   -> explicit grant row, else NONE
5. organization membership           -> VIEW (membership admins: EDIT on
                                        resource types and resources)
6. otherwise                         -> NONE

A resolver is built per request over a request-scoped DirectoryStore and keeps
no state between calls.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from booking_core.core.errors import Forbidden, NotFound
from booking_core.models.calendar import ReservationCalendar
from booking_core.models.organization import Organization
from booking_core.services.directory import DirectoryStore

from booking_shared.schemas.common import (
    AccessLevel,
    CalendarRoleType,
    MembershipRole,
    TargetType,
)

log = structlog.get_logger()

RULE_SUPER_ADMIN = "super_admin"
RULE_ORGANIZATION_ADMIN = "organization_admin"
RULE_CALENDAR_ROLE = "calendar_role"
RULE_GRANULAR_GRANT = "granular_grant"
RULE_MEMBERSHIP = "membership"
RULE_NO_ACCESS = "no_access"


@dataclass(frozen=True)
class Target:
    type: TargetType
    id: uuid.UUID

    @classmethod
    def organization(cls, org_id: uuid.UUID) -> "Target":
        return cls(TargetType.ORGANIZATION, org_id)

    @classmethod
    def resource_type(cls, resource_type_id: uuid.UUID) -> "Target":
        return cls(TargetType.RESOURCE_TYPE, resource_type_id)

    @classmethod
    def resource(cls, resource_id: uuid.UUID) -> "Target":
        return cls(TargetType.RESOURCE, resource_id)

    @classmethod
    def calendar(cls, calendar_id: uuid.UUID) -> "Target":
        return cls(TargetType.CALENDAR, calendar_id)


@dataclass(frozen=True)
class AccessDecision:
    level: AccessLevel
    rule: str
    can_review: bool = False

    def allows(self, required: AccessLevel) -> bool:
        return self.level >= required


NO_ACCESS = AccessDecision(AccessLevel.NONE, RULE_NO_ACCESS)


@dataclass(frozen=True)
class _ResolvedTarget:
    """A target mapped onto its owning organization."""

    target: Target
    organization: Organization
    # Set for resource and resource-type targets
    resource_type_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class CalendarAccess:
    calendar: ReservationCalendar
    decision: AccessDecision


class PermissionResolver:
    def __init__(self, store: DirectoryStore):
        self.store = store

    # -- single target --------------------------------------------------

    async def resolve(self, user_id: uuid.UUID, target: Target) -> AccessLevel:
        return (await self.decide(user_id, target)).level

    async def decide(self, user_id: uuid.UUID, target: Target) -> AccessDecision:
        """Evaluate the ordered rules. Raises NotFound when the target does not exist."""
        resolved = await self._resolve_target(target)

        user = await self.store.get_user(user_id)
        if user is not None and user.is_super_admin:
            return AccessDecision(AccessLevel.ADMIN, RULE_SUPER_ADMIN, can_review=True)

        org = resolved.organization
        if await self.store.is_organization_admin(org.id, user_id):
            if target.type == TargetType.CALENDAR:
                return AccessDecision(AccessLevel.EDIT, RULE_ORGANIZATION_ADMIN, can_review=True)
            return AccessDecision(AccessLevel.ADMIN, RULE_ORGANIZATION_ADMIN, can_review=True)

        if target.type == TargetType.CALENDAR:
            role = await self.store.get_calendar_role(target.id, user_id)
            if role is not None:
                if role.role == CalendarRoleType.EDITOR.value:
                    return AccessDecision(AccessLevel.EDIT, RULE_CALENDAR_ROLE)
                return AccessDecision(AccessLevel.VIEW, RULE_CALENDAR_ROLE, can_review=True)

            if org.granular_calendar_permissions:
                grant = await self.store.get_calendar_grant(org.id, user_id, target.id)
                return self._from_grant(grant)

        elif target.type in (TargetType.RESOURCE_TYPE, TargetType.RESOURCE):
            if org.granular_resource_permissions:
                grant = await self.store.get_resource_grant(
                    org.id, user_id, resolved.resource_type_id
                )
                return self._from_grant(grant)

        membership = await self.store.get_membership(org.id, user_id)
        if membership is not None:
            if (
                membership.role == MembershipRole.ADMIN.value
                and target.type in (TargetType.RESOURCE_TYPE, TargetType.RESOURCE)
            ):
                return AccessDecision(AccessLevel.EDIT, RULE_MEMBERSHIP)
            return AccessDecision(AccessLevel.VIEW, RULE_MEMBERSHIP)

        return NO_ACCESS

    async def require(
        self, user_id: uuid.UUID, target: Target, required: AccessLevel
    ) -> AccessDecision:
        """Decide and raise Forbidden when the level is below ``required``."""
        decision = await self.decide(user_id, target)
        if not decision.allows(required):
            log.info(
                "permission.denied",
                user_id=str(user_id),
                target_type=target.type.value,
                target_id=str(target.id),
                required=required.label,
                actual=decision.level.label,
            )
            raise Forbidden(
                f"{required.label.capitalize()} access is required for this {target.type.value.replace('_', ' ')}.",
                required=required.label,
                actual=decision.level.label,
            )
        return decision

    @staticmethod
    def _from_grant(grant) -> AccessDecision:
        # The granular tier decides even without a row; can_edit implies can_view
        if grant is None:
            return AccessDecision(AccessLevel.NONE, RULE_GRANULAR_GRANT)
        if grant.can_edit:
            return AccessDecision(AccessLevel.EDIT, RULE_GRANULAR_GRANT)
        if grant.can_view:
            return AccessDecision(AccessLevel.VIEW, RULE_GRANULAR_GRANT)
        return AccessDecision(AccessLevel.NONE, RULE_GRANULAR_GRANT)

    async def _resolve_target(self, target: Target) -> _ResolvedTarget:
        org_id: Optional[uuid.UUID] = None
        resource_type_id: Optional[uuid.UUID] = None

        if target.type == TargetType.ORGANIZATION:
            org_id = target.id
        elif target.type == TargetType.CALENDAR:
            calendar = await self.store.get_calendar(target.id)
            if calendar is None:
                raise NotFound("Reservation calendar not found")
            org_id = calendar.organization_id
        else:
            if target.type == TargetType.RESOURCE:
                resource = await self.store.get_resource(target.id)
                if resource is None:
                    raise NotFound("Resource not found")
                resource_type_id = resource.resource_type_id
            else:
                resource_type_id = target.id
            resource_type = await self.store.get_resource_type(resource_type_id)
            if resource_type is None:
                raise NotFound("Resource type not found")
            org_id = resource_type.organization_id

        org = await self.store.get_organization(org_id)
        if org is None:
            raise NotFound("Organization not found")
        return _ResolvedTarget(target=target, organization=org, resource_type_id=resource_type_id)

    # -- derived queries ------------------------------------------------

    async def accessible_organizations(self, user_id: uuid.UUID) -> list[Organization]:
        """Organizations reachable through any grant, ordered by name."""
        user = await self.store.get_user(user_id)
        if user is not None and user.is_super_admin:
            return await self.store.list_organizations()

        org_ids = await self.store.admin_organization_ids(user_id)
        org_ids |= await self.store.member_organization_ids(user_id)

        role_calendar_ids = {r.reservation_calendar_id for r in await self.store.calendar_roles_for_user(user_id)}
        for calendar in await self.store.list_calendars(calendar_ids=role_calendar_ids):
            org_ids.add(calendar.organization_id)

        org_ids |= {g.organization_id for g in await self.store.resource_grants_for_user(user_id)}
        org_ids |= {g.organization_id for g in await self.store.calendar_grants_for_user(user_id)}

        return await self.store.list_organizations(org_ids)

    async def accessible_reservation_calendars(self, user_id: uuid.UUID) -> list[CalendarAccess]:
        """Calendars the user can at least view, with the decision for each, ordered by name."""
        user = await self.store.get_user(user_id)
        if user is not None and user.is_super_admin:
            everything = AccessDecision(AccessLevel.ADMIN, RULE_SUPER_ADMIN, can_review=True)
            return [CalendarAccess(c, everything) for c in await self.store.list_calendars()]

        org_ids = await self.store.admin_organization_ids(user_id)
        org_ids |= await self.store.member_organization_ids(user_id)
        calendar_ids = {r.reservation_calendar_id for r in await self.store.calendar_roles_for_user(user_id)}
        calendar_ids |= {
            g.reservation_calendar_id for g in await self.store.calendar_grants_for_user(user_id)
        }

        accessible: list[CalendarAccess] = []
        seen: set[uuid.UUID] = set()
        for calendar in await self.store.list_calendars(org_ids=org_ids, calendar_ids=calendar_ids):
            if calendar.id in seen:
                continue
            seen.add(calendar.id)
            decision = await self.decide(user_id, Target.calendar(calendar.id))
            if decision.level > AccessLevel.NONE:
                accessible.append(CalendarAccess(calendar, decision))
        return accessible
