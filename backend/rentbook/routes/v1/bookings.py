# backend/rentbook/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    POST /check-conflicts - Find bookings overlapping an interval
    GET / - List bookings with filters
    GET /{booking_id} - Booking with its ledger
    PATCH /{booking_id} - Edit a BOOKED booking
    POST /{booking_id}/issue - BOOKED -> ISSUED, optional exact payment
    POST /{booking_id}/return - ISSUED -> RETURNED, optional exact payment
    GET /{booking_id}/cancel-preview - Refund preview, no changes
    POST /{booking_id}/cancel - Cancel with redistribution to siblings
    POST /{booking_id}/payments - Record a payment or refund
"""

from datetime import datetime
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import get_booking_service, get_org_id
from ...core.exceptions import DomainException
from ...models.booking import BookingStatus
from ...schemas.booking import (
    BookingCancelRequest,
    BookingCancelResponse,
    BookingResponse,
    BookingTransitionRequest,
    BookingUpdate,
    ConflictCheckRequest,
    ConflictCheckResponse,
    ConflictingBooking,
    PaymentCreate,
    RefundInfo,
)
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/check-conflicts", response_model=ConflictCheckResponse)
def check_conflicts(
    payload: ConflictCheckRequest,
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> ConflictCheckResponse:
    """Pre-check an interval for a product before creating or editing a booking."""
    try:
        conflicts = booking_service.check_conflicts(
            org_id,
            payload.product_id,
            payload.from_datetime,
            payload.to_datetime,
            payload.exclude_booking_id,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ConflictCheckResponse(
        has_conflicts=bool(conflicts),
        conflicts=[ConflictingBooking.model_validate(c) for c in conflicts],
    )


@router.get("/", response_model=List[BookingResponse])
def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    product_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    bookings = booking_service.list_bookings(
        org_id, status=status_filter, product_id=product_id, start=start_date, end=end_date
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return BookingResponse.model_validate(booking_service.get_booking(org_id, booking_id))
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{booking_id}", response_model=BookingResponse)
def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Edit fields of a booking that has not been issued yet."""
    changes = payload.model_dump(exclude_unset=True, exclude={"override_conflicts"})
    try:
        booking = booking_service.update_booking(
            org_id, booking_id, changes, override_conflicts=payload.override_conflicts
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/issue", response_model=BookingResponse)
def issue_booking(
    booking_id: str,
    payload: Optional[BookingTransitionRequest] = Body(default=None),
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    payload = payload or BookingTransitionRequest()
    try:
        booking = booking_service.issue_booking(
            org_id, booking_id, payload.payment_amount, payload.note
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/return", response_model=BookingResponse)
def return_booking(
    booking_id: str,
    payload: Optional[BookingTransitionRequest] = Body(default=None),
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    payload = payload or BookingTransitionRequest()
    try:
        booking = booking_service.return_booking(
            org_id, booking_id, payload.payment_amount, payload.note
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}/cancel-preview", response_model=RefundInfo)
def preview_cancel_booking(
    booking_id: str,
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> RefundInfo:
    """What cancelling would transfer to siblings and refund, without changing anything."""
    try:
        return RefundInfo.model_validate(booking_service.preview_cancel_booking(org_id, booking_id))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    booking_id: str,
    payload: Optional[BookingCancelRequest] = Body(default=None),
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCancelResponse:
    payload = payload or BookingCancelRequest()
    try:
        booking, refund_info = booking_service.cancel_booking(
            org_id, booking_id, payload.refund_amount
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingCancelResponse(
        booking=BookingResponse.model_validate(booking),
        refund_info=RefundInfo.model_validate(refund_info),
    )


@router.post("/{booking_id}/payments", response_model=BookingResponse)
def add_payment(
    booking_id: str,
    payload: PaymentCreate,
    org_id: str = Depends(get_org_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = booking_service.add_payment(
            org_id, booking_id, payload.amount, payload.type, payload.note
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)
