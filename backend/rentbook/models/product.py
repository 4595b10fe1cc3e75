"""Rentable product, owned by the external catalog; only the fields bookings read."""

from sqlalchemy import Boolean, Column, DateTime, Numeric, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    org_id = Column(String(26), nullable=False, index=True)
    category_id = Column(String(26), nullable=True)
    title = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    default_rent = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.title}>"
