"""
SQLAlchemy models for the rentbook backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import Booking, BookingStatus
from .booking_payment import BookingPayment, PaymentType
from .order import Order, OrderStatus
from .product import Product

__all__ = [
    "Booking",
    "BookingPayment",
    "BookingStatus",
    "Order",
    "OrderStatus",
    "PaymentType",
    "Product",
]
