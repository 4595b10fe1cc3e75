"""Versioned API routers."""

from . import bookings, orders

__all__ = ["bookings", "orders"]
