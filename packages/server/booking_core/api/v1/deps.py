"""Shared route dependencies."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from booking_core.core.database import get_session_factory
from booking_core.services.reservations import BookingService


def get_booking_service(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> BookingService:
    return BookingService(session_factory)
