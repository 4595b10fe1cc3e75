"""
Two writers racing for the same product on a file-backed SQLite database.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import ulid

from rentbook.core.exceptions import ConcurrencyError, ConflictError
from rentbook.database import Base, enable_immediate_transactions
import rentbook.models  # noqa: F401
from rentbook.models.booking import Booking, BookingStatus
from rentbook.models.product import Product
from rentbook.services.order_service import OrderService
from tests.helpers import at


@pytest.fixture
def file_engine(tmp_path):
    # Short busy timeout so the blocked writer gives up quickly.
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'rentbook.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 0.05},
    )
    enable_immediate_transactions(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def make_session(file_engine):
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False, future=True)
    sessions = []

    def _make():
        session = factory()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture
def seeded(make_session):
    org_id = str(ulid.ULID())
    session = make_session()
    product = Product(org_id=org_id, title="Bridal Lehenga", default_rent=Decimal("1000"))
    session.add(product)
    session.commit()
    first = OrderService(session).create_order(org_id, "Asha Verma", "9876543210")
    second = OrderService(session).create_order(org_id, "Meera Shah", "9123456780")
    return org_id, product.id, first.id, second.id


def _live_bookings(session, product_id):
    return (
        session.query(Booking)
        .filter(Booking.product_id == product_id, Booking.status != BookingStatus.CANCELLED.value)
        .count()
    )


@patch("rentbook.database.time.sleep")
class TestConcurrentBookingWrites:
    def test_second_writer_waits_out_the_first_and_then_sees_the_conflict(
        self, mock_sleep, make_session, seeded
    ):
        org_id, product_id, first_order_id, second_order_id = seeded
        first = OrderService(make_session()).booking_service
        second = OrderService(make_session()).booking_service

        # First writer opens its transaction and checks availability.
        order = first.order_repository.get_order(org_id, first_order_id)
        assert first.conflict_checker.ensure_available(org_id, product_id, at(1), at(3)) is False

        # Second writer cannot start while the first holds the write lock.
        with pytest.raises(ConcurrencyError):
            second.add_booking_to_order(
                org_id, second_order_id, product_id, at(2), at(4), Decimal("1000")
            )
        assert mock_sleep.call_count >= 1

        first.create_booking_in_order(order, product_id, at(1), at(3), Decimal("1000"))
        first.db.commit()

        with pytest.raises(ConflictError) as exc_info:
            second.add_booking_to_order(
                org_id, second_order_id, product_id, at(2), at(4), Decimal("1000")
            )

        assert len(exc_info.value.details["conflicts"]) == 1
        assert _live_bookings(make_session(), product_id) == 1

    def test_writers_on_disjoint_intervals_both_succeed(self, mock_sleep, make_session, seeded):
        org_id, product_id, first_order_id, second_order_id = seeded
        first = OrderService(make_session()).booking_service
        second = OrderService(make_session()).booking_service

        first.add_booking_to_order(org_id, first_order_id, product_id, at(1), at(3), Decimal("1000"))
        second.add_booking_to_order(org_id, second_order_id, product_id, at(3), at(5), Decimal("1000"))

        assert _live_bookings(make_session(), product_id) == 2
        mock_sleep.assert_not_called()
