"""
Tests for retrying transactions on lock and serialization contention.
"""

from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rentbook.core.exceptions import ConcurrencyError, ServiceException
from rentbook.database import is_transient_contention, with_db_retry
from rentbook.services.base import BaseService


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pgcode {pgcode}")
        self.pgcode = pgcode


def _serialization_failure():
    return OperationalError("UPDATE bookings", {}, _PgError("40001"))


class TestIsTransientContention:
    def test_pgcodes(self):
        assert is_transient_contention(_serialization_failure())
        assert is_transient_contention(OperationalError("SELECT 1", {}, _PgError("40P01")))
        assert not is_transient_contention(OperationalError("SELECT 1", {}, _PgError("42P01")))

    def test_sqlite_lock_message(self):
        error = OperationalError("INSERT", {}, Exception("database is locked"))
        assert is_transient_contention(error)

    def test_non_database_errors(self):
        assert not is_transient_contention(ValueError("could not serialize access"))


@patch("rentbook.database.time.sleep")
class TestWithDbRetry:
    def test_succeeds_after_transient_failures(self, mock_sleep):
        func = Mock(side_effect=[_serialization_failure(), _serialization_failure(), "done"])

        assert with_db_retry("cancel_booking", func, max_attempts=3) == "done"
        assert func.call_count == 3
        assert mock_sleep.call_count == 2

    def test_exhaustion_raises_concurrency_error(self, mock_sleep):
        func = Mock(side_effect=_serialization_failure())

        with pytest.raises(ConcurrencyError) as exc_info:
            with_db_retry("cancel_booking", func, max_attempts=2)

        assert func.call_count == 2
        assert exc_info.value.details == {"operation": "cancel_booking", "attempts": 2}
        assert exc_info.value.status_code == 409

    def test_other_errors_are_not_retried(self, mock_sleep):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        func = Mock(side_effect=error)

        with pytest.raises(IntegrityError):
            with_db_retry("create_order", func)

        assert func.call_count == 1
        mock_sleep.assert_not_called()


class TestServiceTransaction:
    def _service(self):
        db = Mock()
        return BaseService(db), db

    def test_commit_on_success(self):
        service, db = self._service()

        assert service.run_in_transaction("noop", lambda: 42) == 42
        db.commit.assert_called_once()

    @patch("rentbook.database.time.sleep")
    def test_contention_is_retried_with_fresh_transaction(self, mock_sleep):
        service, db = self._service()
        func = Mock(side_effect=[_serialization_failure(), "ok"])

        assert service.run_in_transaction("add_payment", func) == "ok"
        assert db.rollback.call_count == 1
        assert db.commit.call_count == 1

    def test_other_database_errors_become_service_exceptions(self):
        service, db = self._service()
        error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed"))

        with pytest.raises(ServiceException):
            service.run_in_transaction("create_order", Mock(side_effect=error))

        db.rollback.assert_called_once()
