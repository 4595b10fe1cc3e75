"""Order lookups and listing."""

from datetime import datetime
import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.order import Order
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class OrderRepository(BaseRepository[Order]):
    def __init__(self, db: Session):
        super().__init__(db, Order)

    def get_order(self, org_id: str, order_id: str, *, lock: bool = False) -> Optional[Order]:
        """Fetch a tenant's order; ``lock=True`` serialises concurrent order-level money moves."""
        try:
            query = self.db.query(Order).filter(Order.id == order_id, Order.org_id == org_id)
            if lock and self.can_lock_rows:
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self._raise_repository_error(f"load order {order_id}", e)

    def list_orders(
        self,
        org_id: str,
        *,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """
        Page through a tenant's orders, newest first.

        Returns:
            Tuple of (orders on this page, total matching orders)
        """
        try:
            query = self.db.query(Order).filter(Order.org_id == org_id)
            if status:
                query = query.filter(Order.status == status)
            if start is not None:
                query = query.filter(Order.created_at >= start)
            if end is not None:
                query = query.filter(Order.created_at <= end)
            if search:
                pattern = f"%{search.strip()}%"
                query = query.filter(
                    or_(Order.customer_name.ilike(pattern), Order.customer_phone.ilike(pattern))
                )
            total = query.count()
            orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()
            return orders, total
        except SQLAlchemyError as e:
            self._raise_repository_error("list orders", e)
