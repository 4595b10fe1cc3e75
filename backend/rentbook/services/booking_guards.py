"""Status preconditions shared by the lifecycle and cancellation services."""

from ..core.exceptions import InvalidTransitionError
from ..models.booking import Booking, BookingStatus
from ..models.order import Order, OrderStatus

_OPEN_ORDER_STATUSES = [s.value for s in OrderStatus if s is not OrderStatus.CANCELLED]


def require_booking_status(booking: Booking, action: str, *allowed: BookingStatus) -> None:
    """Raise InvalidTransitionError unless ``booking`` is in one of ``allowed``."""
    if booking.status not in {status.value for status in allowed}:
        raise InvalidTransitionError(action, booking.status, [status.value for status in allowed])


def require_open_order(order: Order, action: str) -> None:
    if order.is_cancelled:
        raise InvalidTransitionError(action, order.status, _OPEN_ORDER_STATUSES)
