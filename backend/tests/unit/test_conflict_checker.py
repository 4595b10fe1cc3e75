"""
Tests for booking overlap detection and the write-time conflict gate.
"""

from decimal import Decimal

import pytest

from rentbook.core.exceptions import ConflictError, ValidationException
from rentbook.models.booking import BookingStatus
from rentbook.services.conflict_checker import ConflictChecker
from tests.helpers import at


class TestFindConflicts:
    def test_empty_calendar_returns_no_conflicts(self, db, org_id, make_product):
        product = make_product()
        checker = ConflictChecker(db)

        assert checker.find_conflicts(org_id, product.id, at(1), at(3)) == []

    def test_overlapping_booking_is_reported_with_display_fields(
        self, db, org_id, make_product, make_order, add_booking
    ):
        product = make_product()
        order = make_order(customer_name="Ravi Kumar")
        booking = add_booking(order, product, start_day=2, end_day=5)

        conflicts = ConflictChecker(db).find_conflicts(org_id, product.id, at(4), at(6))

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict["booking_id"] == booking.id
        assert conflict["order_id"] == order.id
        assert conflict["customer_name"] == "Ravi Kumar"
        assert conflict["status"] == BookingStatus.BOOKED.value
        assert conflict["from_datetime"].startswith("2026-11-02T10:00:00")

    def test_touching_intervals_do_not_conflict(self, db, org_id, make_product, make_order, add_booking):
        """A booking ending exactly when another starts is not an overlap."""
        product = make_product()
        add_booking(make_order(), product, start_day=2, end_day=5)
        checker = ConflictChecker(db)

        assert checker.find_conflicts(org_id, product.id, at(5), at(7)) == []
        assert checker.find_conflicts(org_id, product.id, at(1), at(2)) == []

    def test_enclosing_interval_conflicts(self, db, org_id, make_product, make_order, add_booking):
        product = make_product()
        add_booking(make_order(), product, start_day=3, end_day=4)

        assert len(ConflictChecker(db).find_conflicts(org_id, product.id, at(1), at(9))) == 1

    def test_exclude_booking_id_ignores_the_booking_itself(
        self, db, org_id, make_product, make_order, add_booking
    ):
        product = make_product()
        booking = add_booking(make_order(), product, start_day=2, end_day=5)

        conflicts = ConflictChecker(db).find_conflicts(
            org_id, product.id, at(2), at(5), exclude_booking_id=booking.id
        )

        assert conflicts == []

    def test_cancelled_bookings_are_not_candidates(
        self, db, org_id, make_product, make_order, add_booking, booking_service
    ):
        product = make_product()
        booking = add_booking(make_order(), product, start_day=2, end_day=5)
        booking_service.cancel_booking(org_id, booking.id)

        assert ConflictChecker(db).find_conflicts(org_id, product.id, at(2), at(5)) == []

    def test_other_products_and_tenants_are_ignored(
        self, db, org_id, make_product, make_order, add_booking
    ):
        product = make_product()
        other_product = make_product(title="Sherwani")
        add_booking(make_order(), other_product, start_day=2, end_day=5)
        checker = ConflictChecker(db)

        assert checker.find_conflicts(org_id, product.id, at(2), at(5)) == []
        assert checker.find_conflicts("another-org", other_product.id, at(2), at(5)) == []

    def test_reversed_interval_is_rejected(self, db, org_id, make_product):
        product = make_product()

        with pytest.raises(ValidationException):
            ConflictChecker(db).find_conflicts(org_id, product.id, at(5), at(5))


class TestConflictGateOnWrites:
    def test_overlapping_booking_is_rejected_without_override(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        product = make_product()
        first = add_booking(make_order(), product, start_day=2, end_day=5)
        order = make_order(customer_name="Second Customer")

        with pytest.raises(ConflictError) as exc_info:
            add_booking(order, product, start_day=4, end_day=6)

        assert exc_info.value.details["conflicts"][0]["booking_id"] == first.id
        assert booking_service.list_bookings(org_id, product_id=product.id) == [first]

    def test_override_creates_booking_and_marks_it(self, make_product, make_order, add_booking):
        product = make_product()
        add_booking(make_order(), product, start_day=2, end_day=5)

        booking = add_booking(
            make_order(), product, start_day=4, end_day=6, override_conflicts=True
        )

        assert booking.is_conflict_overridden is True

    def test_free_interval_is_not_marked_overridden(self, make_product, make_order, add_booking):
        booking = add_booking(make_order(), make_product(), override_conflicts=True)

        assert booking.is_conflict_overridden is False

    def test_bookings_in_the_same_order_also_conflict(self, make_product, make_order, add_booking):
        product = make_product()
        order = make_order()
        add_booking(order, product, start_day=2, end_day=5)

        with pytest.raises(ConflictError):
            add_booking(order, product, start_day=3, end_day=4)

    def test_edit_into_an_occupied_interval_is_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        product = make_product()
        add_booking(make_order(), product, start_day=2, end_day=5)
        movable = add_booking(make_order(), product, start_day=6, end_day=8)

        with pytest.raises(ConflictError):
            booking_service.update_booking(org_id, movable.id, {"from_datetime": at(4)})

        reloaded = booking_service.get_booking(org_id, movable.id)
        assert reloaded.from_datetime.day == 6

    def test_edit_in_place_does_not_conflict_with_itself(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        product = make_product()
        booking = add_booking(make_order(), product, start_day=2, end_day=5)

        updated = booking_service.update_booking(
            org_id, booking.id, {"to_datetime": at(6), "decided_rent": Decimal("1200")}
        )

        assert updated.to_datetime.day == 6
        assert updated.is_conflict_overridden is False
