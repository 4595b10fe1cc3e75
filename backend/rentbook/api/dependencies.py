# backend/rentbook/api/dependencies.py
"""
Dependency providers for the HTTP layer.

Authentication is handled upstream; the tenant arrives in the
``X-Org-Id`` header set by the gateway.
"""

from typing import Generator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db as original_get_db
from ..services.booking_service import BookingService
from ..services.order_service import OrderService


def get_db() -> Generator[Session, None, None]:
    """Database session dependency; closed after the request."""
    yield from original_get_db()


def get_org_id(x_org_id: str = Header(..., alias="X-Org-Id")) -> str:
    """Tenant scope for every request."""
    org_id = x_org_id.strip()
    if not org_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Org-Id header is required")
    return org_id


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_order_service(
    db: Session = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
) -> OrderService:
    return OrderService(db, booking_service=booking_service)
