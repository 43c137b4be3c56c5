"""Tests for the exception hierarchy and error translation."""

import sqlite3

import pytest

from loyalty_ledger.exceptions import (
    GENERIC_ERROR_MESSAGE,
    AccountNotFoundError,
    AuthorizationError,
    CircleCreditsNotAllowedError,
    CircleMemberNotFoundError,
    ClientNotFoundError,
    ConflictError,
    DatabaseError,
    InsufficientBalanceError,
    InvalidAmountError,
    LoyaltyLedgerError,
    MemberAlreadyInCircleError,
    NotFoundError,
    ValidationError,
    error_response,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        ("error", "base", "status"),
        [
            (ClientNotFoundError("c1"), NotFoundError, 404),
            (AccountNotFoundError("a1"), NotFoundError, 404),
            (CircleMemberNotFoundError("h1", "m1"), NotFoundError, 404),
            (MemberAlreadyInCircleError("m1"), ConflictError, 409),
            (InvalidAmountError(0), ValidationError, 400),
            (CircleCreditsNotAllowedError("a1"), AuthorizationError, 403),
            (InsufficientBalanceError("a1", 10, 5), LoyaltyLedgerError, 400),
        ],
    )
    def test_status_codes(self, error, base, status):
        assert isinstance(error, base)
        assert error.status_code == status
        assert error.is_operational

    def test_insufficient_balance_is_not_a_validation_error(self):
        assert not isinstance(InsufficientBalanceError("a1", 10, 5), ValidationError)

    def test_not_found_message_and_context(self):
        error = AccountNotFoundError("a1")

        assert error.message == "Loyalty account with id 'a1' not found"
        assert error.context == {"resource": "Loyalty account", "resource_id": "a1"}

    def test_database_error_is_not_operational(self):
        assert not DatabaseError("boom").is_operational
        assert DatabaseError("boom").status_code == 500


class TestErrorResponse:
    def test_operational_error_is_passed_through(self):
        status, body = error_response(InsufficientBalanceError("a1", 10, 5))

        assert status == 400
        assert body == {
            "error": "INSUFFICIENT_BALANCE",
            "message": "Insufficient balance: required 10, available 5",
            "context": {"account_id": "a1", "required": 10, "available": 5},
        }

    def test_internal_error_is_hidden(self):
        try:
            raise sqlite3.OperationalError("disk I/O error")
        except sqlite3.OperationalError as exc:
            wrapped = DatabaseError("Document store get failed")
            wrapped.__cause__ = exc

        status, body = error_response(wrapped)

        assert status == 500
        assert body == {
            "error": "INTERNAL_SERVER_ERROR",
            "message": GENERIC_ERROR_MESSAGE,
            "context": {},
        }

    def test_unexpected_exception_is_hidden(self):
        status, body = error_response(KeyError("secret_column"))

        assert status == 500
        assert "secret_column" not in str(body)
