from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import ulid

from rentbook.database import Base, enable_immediate_transactions

# Import models so Base.metadata is populated for create_all.
import rentbook.models  # noqa: F401
from rentbook.models.order import Order
from rentbook.models.product import Product
from rentbook.services.booking_service import BookingService
from rentbook.services.order_service import OrderService

from .helpers import at


@pytest.fixture(scope="function")
def _engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_immediate_transactions(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(_engine) -> Session:
    """
    Session on a fresh in-memory database.

    Services commit and roll back on it exactly as they do in production.
    """
    SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def org_id() -> str:
    return str(ulid.ULID())


@pytest.fixture
def order_service(db) -> OrderService:
    return OrderService(db)


@pytest.fixture
def booking_service(order_service) -> BookingService:
    return order_service.booking_service


@pytest.fixture
def make_product(db, org_id):
    def _make(title: str = "Bridal Lehenga", default_rent="1000", code=None, org=None) -> Product:
        product = Product(
            org_id=org or org_id,
            title=title,
            code=code,
            default_rent=Decimal(default_rent),
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_order(order_service, org_id):
    def _make(customer_name: str = "Asha Verma", customer_phone: str = "9876543210") -> Order:
        return order_service.create_order(org_id, customer_name, customer_phone)

    return _make


@pytest.fixture
def add_booking(booking_service, org_id):
    """Add a booking to an order with sensible defaults for the interval and money."""

    def _add(order, product, start_day=1, end_day=3, rent="1000", advance="0", **kwargs):
        return booking_service.add_booking_to_order(
            org_id,
            order.id,
            product.id,
            at(start_day),
            at(end_day),
            Decimal(rent),
            Decimal(advance),
            **kwargs,
        )

    return _add
