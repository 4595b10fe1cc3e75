# backend/rentbook/routes/v1/orders.py
"""
Order routes - API v1

Versioned order endpoints under /api/v1/orders.
All business logic delegated to OrderService.

Endpoints:
    GET / - List orders with filters and pagination
    POST / - Create an order, optionally with its first bookings
    GET /{order_id} - Order with bookings and recomputed totals
    PATCH /{order_id} - Edit customer details
    POST /{order_id}/bookings - Add a booking to the order
    POST /{order_id}/payments - Spread a payment over underpaid bookings
    GET /{order_id}/cancel-preview - Refund preview for cancelling the order
    POST /{order_id}/cancel - Cancel every booking with proportional refund
    GET /{order_id}/invoice - Invoice view with merged payment history
"""

from datetime import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ...api.dependencies import get_org_id, get_order_service
from ...core.exceptions import DomainException
from ...models.order import Order, OrderStatus
from ...schemas.base import PaginatedResponse
from ...schemas.booking import BookingCreate, BookingResponse
from ...schemas.order import (
    InvoiceResponse,
    OrderCancelPreview,
    OrderCancelRequest,
    OrderCancelResponse,
    OrderCreate,
    OrderPaymentRequest,
    OrderPaymentResponse,
    OrderResponse,
    OrderSummaryResponse,
    OrderUpdate,
)
from ...services.order_service import OrderService
from .bookings import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders-v1"])


def _order_response(order_service: OrderService, order: Order) -> OrderResponse:
    bookings = order_service.booking_repository.get_order_bookings(order.id)
    summary = OrderSummaryResponse.model_validate(order)
    return OrderResponse(
        **summary.model_dump(),
        bookings=[BookingResponse.model_validate(b) for b in bookings],
    )


@router.get("/", response_model=PaginatedResponse[OrderSummaryResponse])
def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> PaginatedResponse[OrderSummaryResponse]:
    result = order_service.list_orders(
        org_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    result["items"] = [OrderSummaryResponse.model_validate(o) for o in result["items"]]
    return PaginatedResponse[OrderSummaryResponse](**result)


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    try:
        order = order_service.create_order(
            org_id,
            payload.customer_name,
            payload.customer_phone,
            [b.model_dump() for b in payload.bookings],
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _order_response(order_service, order)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    try:
        order = order_service.get_order(org_id, order_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _order_response(order_service, order)


@router.patch("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: str,
    payload: OrderUpdate,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    try:
        order = order_service.update_order(
            org_id, order_id, payload.customer_name, payload.customer_phone
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _order_response(order_service, order)


@router.post(
    "/{order_id}/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_booking_to_order(
    order_id: str,
    payload: BookingCreate,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> BookingResponse:
    """Add a booking; overlapping intervals are rejected unless override_conflicts is set."""
    try:
        booking = order_service.booking_service.add_booking_to_order(
            org_id,
            order_id,
            payload.product_id,
            payload.from_datetime,
            payload.to_datetime,
            payload.decided_rent,
            payload.advance_amount,
            override_conflicts=payload.override_conflicts,
            additional_items_description=payload.additional_items_description,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post("/{order_id}/payments", response_model=OrderPaymentResponse)
def collect_order_payment(
    order_id: str,
    payload: OrderPaymentRequest,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderPaymentResponse:
    try:
        result = order_service.collect_order_payment(org_id, order_id, payload.amount, payload.note)
    except DomainException as e:
        handle_domain_exception(e)
    return OrderPaymentResponse(
        order=_order_response(order_service, result["order"]),
        distributions=result["distributions"],
        total_distributed=result["total_distributed"],
        undistributed=result["undistributed"],
    )


@router.get("/{order_id}/cancel-preview", response_model=OrderCancelPreview)
def preview_cancel_order(
    order_id: str,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderCancelPreview:
    try:
        return OrderCancelPreview.model_validate(order_service.preview_cancel_order(org_id, order_id))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{order_id}/cancel", response_model=OrderCancelResponse)
def cancel_order(
    order_id: str,
    payload: Optional[OrderCancelRequest] = Body(default=None),
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> OrderCancelResponse:
    payload = payload or OrderCancelRequest()
    try:
        result = order_service.cancel_order(org_id, order_id, payload.refund_amount, payload.note)
    except DomainException as e:
        handle_domain_exception(e)
    return OrderCancelResponse(
        order=_order_response(order_service, result["order"]),
        refund_amount=result["refund_amount"],
        total_paid=result["total_paid"],
        refund_distributions=result["refund_distributions"],
    )


@router.get("/{order_id}/invoice", response_model=InvoiceResponse)
def generate_invoice(
    order_id: str,
    org_id: str = Depends(get_org_id),
    order_service: OrderService = Depends(get_order_service),
) -> InvoiceResponse:
    try:
        return InvoiceResponse.model_validate(order_service.generate_invoice(org_id, order_id))
    except DomainException as e:
        handle_domain_exception(e)
