"""
Tests for booking creation, edits and status transitions.
"""

from decimal import Decimal

import pytest

from rentbook.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentError,
    RefundExceedsPaidError,
    ValidationException,
)
from rentbook.models.booking import BookingStatus
from rentbook.models.booking_payment import PaymentType
from tests.helpers import at


class TestAddBookingToOrder:
    def test_booking_snapshots_product_and_records_advance(
        self, make_product, make_order, add_booking
    ):
        product = make_product(title="Sherwani", default_rent="1500")
        booking = add_booking(make_order(), product, rent="1200", advance="300")

        assert booking.status == BookingStatus.BOOKED.value
        assert booking.product_default_rent == Decimal("1500.00")
        assert booking.decided_rent == Decimal("1200.00")
        assert booking.advance_amount == Decimal("300.00")
        assert booking.remaining_amount == Decimal("900.00")
        assert len(booking.payments) == 1
        assert booking.payments[0].type == PaymentType.ADVANCE.value
        assert booking.payments[0].note == "Advance received Rs.300"

    def test_zero_advance_leaves_ledger_empty(self, make_product, make_order, add_booking):
        booking = add_booking(make_order(), make_product(), advance="0")

        assert booking.payments == []
        assert booking.remaining_amount == Decimal("1000.00")

    def test_advance_above_rent_is_rejected(self, org_id, make_product, make_order, add_booking, booking_service):
        product = make_product()

        with pytest.raises(OverpaymentError):
            add_booking(make_order(), product, rent="500", advance="600")

        assert booking_service.list_bookings(org_id, product_id=product.id) == []

    def test_bookings_keep_insertion_order(self, booking_service, make_product, make_order, add_booking):
        order = make_order()
        first = add_booking(order, make_product(title="A"))
        second = add_booking(order, make_product(title="B"))

        bookings = booking_service.repository.get_order_bookings(order.id)

        assert [b.id for b in bookings] == [first.id, second.id]
        assert (first.sequence, second.sequence) == (0, 1)

    def test_unknown_order_or_product(self, org_id, make_product, make_order, booking_service):
        product = make_product()
        order = make_order()

        with pytest.raises(NotFoundError):
            booking_service.add_booking_to_order(
                org_id, "missing", product.id, at(1), at(2), Decimal("100")
            )
        with pytest.raises(NotFoundError):
            booking_service.add_booking_to_order(
                org_id, order.id, "missing", at(1), at(2), Decimal("100")
            )

    def test_product_of_another_tenant_is_not_found(
        self, org_id, make_product, make_order, booking_service
    ):
        foreign = make_product(org="someone-else")

        with pytest.raises(NotFoundError):
            booking_service.add_booking_to_order(
                org_id, make_order().id, foreign.id, at(1), at(2), Decimal("100")
            )

    def test_reversed_interval_is_rejected(self, org_id, make_product, make_order, booking_service):
        with pytest.raises(ValidationException):
            booking_service.add_booking_to_order(
                org_id, make_order().id, make_product().id, at(3), at(2), Decimal("100")
            )

    def test_cancelled_order_accepts_no_bookings(
        self, org_id, make_product, make_order, add_booking, order_service
    ):
        order = make_order()
        add_booking(order, make_product())
        order_service.cancel_order(org_id, order.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            add_booking(order, make_product(title="Another"))

        assert exc_info.value.details["current_status"] == "CANCELLED"


class TestTransitions:
    def test_issue_then_return(self, org_id, make_product, make_order, add_booking, booking_service):
        booking = add_booking(make_order(), make_product())

        booking = booking_service.issue_booking(org_id, booking.id)
        assert booking.status == BookingStatus.ISSUED.value
        assert booking.issued_at is not None

        booking = booking_service.return_booking(org_id, booking.id)
        assert booking.status == BookingStatus.RETURNED.value
        assert booking.returned_at is not None

    def test_issue_twice_names_current_and_required_status(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())
        booking_service.issue_booking(org_id, booking.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            booking_service.issue_booking(org_id, booking.id)

        assert exc_info.value.details["current_status"] == "ISSUED"
        assert exc_info.value.details["required_status"] == ["BOOKED"]

    def test_return_requires_issued(self, org_id, make_product, make_order, add_booking, booking_service):
        booking = add_booking(make_order(), make_product())

        with pytest.raises(InvalidTransitionError) as exc_info:
            booking_service.return_booking(org_id, booking.id)

        assert exc_info.value.details["required_status"] == ["ISSUED"]

    def test_issued_booking_cannot_be_cancelled(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())
        booking_service.issue_booking(org_id, booking.id)

        with pytest.raises(InvalidTransitionError):
            booking_service.cancel_booking(org_id, booking.id)
        with pytest.raises(InvalidTransitionError):
            booking_service.preview_cancel_booking(org_id, booking.id)

    def test_zero_payment_on_issue_is_ignored(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())

        booking = booking_service.issue_booking(org_id, booking.id, Decimal("0"))

        assert booking.payments == []

    def test_payments_at_handover_get_default_notes(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000")

        booking_service.issue_booking(org_id, booking.id, Decimal("400"))
        booking = booking_service.return_booking(org_id, booking.id, Decimal("600"))

        notes = [p.note for p in booking.payments if p.type == PaymentType.PAYMENT_RECEIVED.value]
        assert sorted(notes) == ["Payment on issue", "Payment on return"]
        assert booking.remaining_amount == Decimal("0.00")


class TestUpdateBooking:
    def test_edit_after_issue_is_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())
        booking_service.issue_booking(org_id, booking.id)

        with pytest.raises(InvalidTransitionError):
            booking_service.update_booking(org_id, booking.id, {"decided_rent": Decimal("10")})

    def test_advance_edit_rewrites_the_existing_advance_entry(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000", advance="300")

        booking = booking_service.update_booking(
            org_id, booking.id, {"advance_amount": Decimal("500")}
        )

        advances = [p for p in booking.payments if p.type == PaymentType.ADVANCE.value]
        assert len(advances) == 1
        assert advances[0].amount == Decimal("500.00")
        assert booking.advance_amount == Decimal("500.00")
        assert booking.remaining_amount == Decimal("500.00")

    def test_advance_edit_creates_entry_when_missing(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000")

        booking = booking_service.update_booking(
            org_id, booking.id, {"advance_amount": Decimal("200")}
        )

        assert len(booking.payments) == 1
        assert booking.advance_amount == Decimal("200.00")

    def test_advance_edit_beyond_rent_is_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000", advance="300")

        with pytest.raises(OverpaymentError) as exc_info:
            booking_service.update_booking(org_id, booking.id, {"advance_amount": Decimal("1200")})

        assert exc_info.value.details["max_allowed"] == "1000.00"
        reloaded = booking_service.get_booking(org_id, booking.id)
        assert reloaded.payments[0].amount == Decimal("300.00")
        assert reloaded.advance_amount == Decimal("300.00")

    def test_rent_below_paid_is_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000", advance="600")

        with pytest.raises(OverpaymentError):
            booking_service.update_booking(org_id, booking.id, {"decided_rent": Decimal("500")})

    def test_moving_to_another_product_refreshes_snapshot(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(default_rent="1000"))
        replacement = make_product(title="Gown", default_rent="2500")

        booking = booking_service.update_booking(
            org_id,
            booking.id,
            {"product_id": replacement.id, "additional_items_description": "Dupatta"},
        )

        assert booking.product_id == replacement.id
        assert booking.product_default_rent == Decimal("2500.00")
        assert booking.product_title == "Gown"
        assert booking.additional_items_description == "Dupatta"

    def test_unknown_fields_are_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())

        with pytest.raises(ValidationException):
            booking_service.update_booking(org_id, booking.id, {"status": "RETURNED"})

    @pytest.mark.parametrize(
        "field", ["decided_rent", "advance_amount", "product_id", "from_datetime", "to_datetime"]
    )
    def test_null_for_required_field_is_rejected(
        self, field, org_id, make_product, make_order, add_booking, booking_service
    ):
        product = make_product()
        booking = add_booking(make_order(), product, rent="1000", advance="300")

        with pytest.raises(ValidationException) as exc_info:
            booking_service.update_booking(org_id, booking.id, {field: None})

        assert exc_info.value.details["fields"] == [field]
        reloaded = booking_service.get_booking(org_id, booking.id)
        assert reloaded.product_id == product.id
        assert reloaded.decided_rent == Decimal("1000.00")
        assert reloaded.advance_amount == Decimal("300.00")
        assert reloaded.remaining_amount == Decimal("700.00")
        assert len(reloaded.payments) == 1

    def test_description_can_be_cleared(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product())
        booking_service.update_booking(
            org_id, booking.id, {"additional_items_description": "Turban"}
        )

        booking = booking_service.update_booking(
            org_id, booking.id, {"additional_items_description": None}
        )

        assert booking.additional_items_description is None

    def test_advance_edit_below_refunded_amount_is_rejected(
        self, org_id, make_product, make_order, add_booking, booking_service
    ):
        booking = add_booking(make_order(), make_product(), rent="1000", advance="300")
        booking_service.add_payment(org_id, booking.id, Decimal("200"), PaymentType.REFUND)

        with pytest.raises(RefundExceedsPaidError) as exc_info:
            booking_service.update_booking(org_id, booking.id, {"advance_amount": Decimal("0")})

        assert exc_info.value.details["amount"] == "200.00"
        assert exc_info.value.details["max_refund"] == "0.00"
        reloaded = booking_service.get_booking(org_id, booking.id)
        advances = [p for p in reloaded.payments if p.type == PaymentType.ADVANCE.value]
        assert advances[0].amount == Decimal("300.00")
        assert reloaded.advance_amount == Decimal("100.00")
        assert reloaded.remaining_amount == Decimal("900.00")
