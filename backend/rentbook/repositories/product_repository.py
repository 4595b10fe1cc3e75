"""Product lookups for the booking core."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.product import Product
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository[Product]):
    def __init__(self, db: Session):
        super().__init__(db, Product)

    def get_product(self, org_id: str, product_id: str, *, lock: bool = False) -> Optional[Product]:
        """
        Fetch a tenant's product.

        With ``lock=True`` the row is taken FOR UPDATE where the dialect
        supports it, which serialises every booking write on that product
        until the surrounding transaction ends.
        """
        try:
            query = self.db.query(Product).filter(
                Product.id == product_id,
                Product.org_id == org_id,
            )
            if lock and self.can_lock_rows:
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self._raise_repository_error(f"load product {product_id}", e)
