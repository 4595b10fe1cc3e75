# backend/rentbook/repositories/factory.py
"""
Repository Factory for the rentbook backend.

Centralizes repository creation so services can accept injected
repositories in tests and fall back to these defaults otherwise.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .order_repository import OrderRepository
    from .product_repository import ProductRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking and ledger queries."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_order_repository(db: Session) -> "OrderRepository":
        """Create repository for order queries."""
        from .order_repository import OrderRepository

        return OrderRepository(db)

    @staticmethod
    def create_product_repository(db: Session) -> "ProductRepository":
        """Create repository for product lookups and locks."""
        from .product_repository import ProductRepository

        return ProductRepository(db)
