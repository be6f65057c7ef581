"""
API v1 Router

Authenticated routes identify the caller with a bearer token; /public routes
are keyed by a resource's booking token instead.
"""

from fastapi import APIRouter
from . import calendars, permissions, public, reservations, resources
from .organizations import router as organizations_router
from .organizations import resource_types_router

router = APIRouter()

router.include_router(permissions.router, tags=["Permissions"])
router.include_router(organizations_router, prefix="/organizations", tags=["Organizations"])
router.include_router(resource_types_router, prefix="/resource-types", tags=["Resource Types"])
router.include_router(resources.router, prefix="/resources", tags=["Resources"])
router.include_router(
    calendars.router, prefix="/reservation-calendars", tags=["Reservation Calendars"]
)
router.include_router(reservations.router, prefix="/reservations", tags=["Reservations"])
router.include_router(public.router, prefix="/public/booking", tags=["Public Booking"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/reservations",
            "/resources/{resource_id}/availability",
            "/me/organizations",
            "/me/reservation-calendars",
            "/permissions/{target_type}/{target_id}",
            "/organizations/{org_id}/admins/{user_id}",
            "/reservation-calendars/{calendar_id}/roles",
            "/public/booking/{token}",
        ],
    }
