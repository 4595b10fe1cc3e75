# backend/rentbook/services/order_service.py
"""
Order Service for the rentbook backend.

Order-level entry points: creation, lookup and listing, customer edits,
order-wide payments, whole-order cancellation and the invoice view.
"""

from datetime import datetime
from decimal import Decimal
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundError, ValidationException
from ..core.money import ZERO, to_money
from ..core.timezone_utils import as_utc
from ..models.order import Order, OrderStatus
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.order_repository import OrderRepository
from .base import BaseService
from .booking_guards import require_open_order
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .order_aggregator import OrderAggregator

logger = logging.getLogger(__name__)


class OrderService(BaseService):
    """Customer orders and their aggregate operations."""

    def __init__(
        self,
        db: Session,
        booking_service: Optional[BookingService] = None,
        order_repository: Optional[OrderRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
    ):
        super().__init__(db)
        self.repository = order_repository or RepositoryFactory.create_order_repository(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.booking_service = booking_service or BookingService(
            db,
            booking_repository=self.booking_repository,
            order_repository=self.repository,
        )
        self.aggregator: OrderAggregator = self.booking_service.aggregator
        self.cancellation_service: CancellationService = self.booking_service.cancellation_service

    def _load_order(self, org_id: str, order_id: str, *, lock: bool = False) -> Order:
        order = self.repository.get_order(org_id, order_id, lock=lock)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @BaseService.measure_operation("create_order")
    def create_order(
        self,
        org_id: str,
        customer_name: str,
        customer_phone: Optional[str] = None,
        bookings: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Order:
        """
        Create an order, optionally with its first bookings, in one transaction.

        Each booking dict carries the ``add_booking_to_order`` arguments
        (``product_id``, ``from_datetime``, ``to_datetime``, ``decided_rent``,
        and optionally ``advance_amount``, ``override_conflicts``,
        ``additional_items_description``). A conflict on any of them
        rolls back the whole order.
        """
        if not customer_name or not customer_name.strip():
            raise ValidationException("Customer name is required", code="INVALID_CUSTOMER")
        initial = list(bookings or [])
        self.log_operation("create_order", org_id=org_id, booking_count=len(initial))

        def _create() -> Order:
            order = self.repository.create(
                org_id=org_id,
                customer_name=customer_name.strip(),
                customer_phone=customer_phone,
                status=OrderStatus.INITIATED.value,
                total_amount=ZERO,
                total_received=ZERO,
                remaining_amount=ZERO,
            )
            for item in initial:
                self.booking_service.create_booking_in_order(
                    order,
                    item["product_id"],
                    item["from_datetime"],
                    item["to_datetime"],
                    item["decided_rent"],
                    item.get("advance_amount") or ZERO,
                    override_conflicts=item.get("override_conflicts", False),
                    additional_items_description=item.get("additional_items_description"),
                )
            self.aggregator.recompute_status(order)
            return order

        order = self.run_in_transaction("create_order", _create)
        self.logger.info(f"Created order {order.id} for {order.customer_name}")
        return order

    @BaseService.measure_operation("get_order")
    def get_order(self, org_id: str, order_id: str) -> Order:
        """Return an order with its totals and status freshly recomputed."""

        def _get() -> Order:
            order = self._load_order(org_id, order_id)
            self.aggregator.recompute_status(order)
            return order

        return self.run_in_transaction("get_order", _get)

    @BaseService.measure_operation("list_orders")
    def list_orders(
        self,
        org_id: str,
        *,
        status: Optional[OrderStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        limit = min(limit or settings.default_page_size, settings.max_page_size)
        page = max(page, 1)
        orders, total = self.repository.list_orders(
            org_id,
            status=status.value if status else None,
            start=as_utc(start_date),
            end=as_utc(end_date),
            search=search,
            skip=(page - 1) * limit,
            limit=limit,
        )
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "items": orders,
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        }

    @BaseService.measure_operation("update_order")
    def update_order(
        self,
        org_id: str,
        order_id: str,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
    ) -> Order:
        """Edit customer details; money and status are never set here."""

        def _update() -> Order:
            order = self._load_order(org_id, order_id)
            if customer_name is not None:
                if not customer_name.strip():
                    raise ValidationException(
                        "Customer name is required", code="INVALID_CUSTOMER"
                    )
                order.customer_name = customer_name.strip()
            if customer_phone is not None:
                order.customer_phone = customer_phone or None
            self.repository.flush()
            return order

        return self.run_in_transaction("update_order", _update)

    @BaseService.measure_operation("collect_order_payment")
    def collect_order_payment(
        self,
        org_id: str,
        order_id: str,
        amount: Decimal,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Take one payment for the whole order and spread it over underpaid bookings.

        Returns:
            Dict with ``order``, ``distributions``, ``total_distributed`` and
            ``undistributed`` (the part of ``amount`` no booking needed)
        """
        self.log_operation("collect_order_payment", order_id=order_id, amount=str(amount))

        def _collect() -> Dict[str, Any]:
            order = self._load_order(org_id, order_id, lock=True)
            require_open_order(order, "collect order payment")
            distributions = self.aggregator.distribute_payment(order, amount, note)
            total = sum((d["amount"] for d in distributions), ZERO)
            return {
                "order": order,
                "distributions": distributions,
                "total_distributed": total,
                "undistributed": to_money(amount) - total,
            }

        return self.run_in_transaction("collect_order_payment", _collect)

    def cancel_order(
        self,
        org_id: str,
        order_id: str,
        refund_amount: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.cancellation_service.cancel_order(org_id, order_id, refund_amount, note)

    def preview_cancel_order(self, org_id: str, order_id: str) -> Dict[str, Decimal]:
        return self.cancellation_service.preview_order_cancellation(org_id, order_id)

    @BaseService.measure_operation("generate_invoice")
    def generate_invoice(self, org_id: str, order_id: str) -> Dict[str, Any]:
        """
        Read-only projection of an order for printing.

        Totals are recomputed from the ledgers without being written back.
        """
        order = self._load_order(org_id, order_id)
        bookings = self.booking_repository.get_order_bookings(order.id)
        totals = self.aggregator.compute_totals(bookings)

        lines: List[Dict[str, Any]] = []
        history: List[Dict[str, Any]] = []
        for booking in bookings:
            balance = self.aggregator.ledger.compute_balance(booking)
            lines.append(
                {
                    "booking_id": booking.id,
                    "product_id": booking.product_id,
                    "product_title": booking.product_title,
                    "product_code": booking.product.code if booking.product else None,
                    "from_datetime": as_utc(booking.from_datetime),
                    "to_datetime": as_utc(booking.to_datetime),
                    "decided_rent": to_money(booking.decided_rent),
                    "total_paid": balance.total_paid,
                    "remaining_amount": balance.remaining,
                    "status": booking.status,
                    "additional_items_description": booking.additional_items_description,
                }
            )
            for entry in booking.payments:
                history.append(
                    {
                        "booking_id": booking.id,
                        "product_title": booking.product_title,
                        "type": entry.type,
                        "amount": to_money(entry.amount),
                        "at": as_utc(entry.at),
                        "note": entry.note,
                        "_position": entry.position,
                    }
                )

        history.sort(key=lambda row: (row["at"], row["_position"]), reverse=True)
        for row in history:
            del row["_position"]

        return {
            "order_id": order.id,
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
            "status": order.status,
            "created_at": as_utc(order.created_at),
            "bookings": lines,
            "total_amount": totals.total_amount,
            "total_received": totals.total_received,
            "remaining_amount": totals.remaining_amount,
            "payment_history": history,
        }
