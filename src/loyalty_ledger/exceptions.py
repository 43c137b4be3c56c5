"""Exception hierarchy for the loyalty ledger.

All core errors inherit from LoyaltyLedgerError and carry a stable
machine-readable error_code plus the HTTP-equivalent status_code the route
layer should answer with. Operational errors are expected business outcomes;
anything else is an internal failure that must not leak to callers.
"""

from typing import Any

from loyalty_ledger.logging_config import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class LoyaltyLedgerError(Exception):
    """Base exception for all loyalty ledger errors.

    Includes an error_code for API responses, extra context, and whether the
    error is operational (safe to show to the caller as-is).
    """

    error_code: str = "LOYALTY_LEDGER_ERROR"
    status_code: int = 500
    is_operational: bool = True

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(LoyaltyLedgerError):
    """Raised when a referenced resource does not exist."""

    error_code = "RESOURCE_NOT_FOUND"
    status_code = 404

    def __init__(
        self, resource: str, resource_id: str, message: str | None = None
    ) -> None:
        super().__init__(
            message or f"{resource} with id '{resource_id}' not found",
            context={"resource": resource, "resource_id": resource_id},
        )


class ClientNotFoundError(NotFoundError):
    def __init__(self, client_id: str) -> None:
        super().__init__("Client", client_id)


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str) -> None:
        super().__init__("Loyalty account", account_id)


class AuditLogNotFoundError(NotFoundError):
    def __init__(self, audit_id: str) -> None:
        super().__init__("Audit log", audit_id)


class CircleMemberNotFoundError(NotFoundError):
    """Raised when a client is not a member of the holder's circle."""

    error_code = "MEMBER_NOT_IN_CIRCLE"

    def __init__(self, holder_id: str, member_id: str) -> None:
        super().__init__(
            "Family circle member",
            member_id,
            message="Member is not part of this family circle",
        )
        self.context["holder_id"] = holder_id


# =============================================================================
# Conflict Errors
# =============================================================================


class ConflictError(LoyaltyLedgerError):
    """Raised when a mutation collides with existing state."""

    error_code = "CONFLICT"
    status_code = 409


class MemberAlreadyInCircleError(ConflictError):
    error_code = "MEMBER_ALREADY_IN_CIRCLE"

    def __init__(self, member_id: str) -> None:
        super().__init__(
            "Client is already part of a family circle",
            context={"member_id": member_id},
        )


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(LoyaltyLedgerError):
    """Raised when malformed input reaches the core."""

    error_code = "VALIDATION_FAILED"
    status_code = 400


class InvalidAmountError(ValidationError):
    """Raised when a point amount is not a positive integer."""

    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: Any) -> None:
        super().__init__(
            f"Amount must be a positive integer, got {amount!r}",
            context={"amount": repr(amount)},
        )


class InvalidLimitError(ValidationError):
    error_code = "INVALID_LIMIT"

    def __init__(self, limit: Any, maximum: int) -> None:
        super().__init__(
            f"Limit must be an integer between 1 and {maximum}, got {limit!r}",
            context={"limit": repr(limit), "maximum": maximum},
        )


class CannotAddSelfError(ValidationError):
    error_code = "CANNOT_ADD_SELF"

    def __init__(self, client_id: str) -> None:
        super().__init__(
            "Cannot add yourself to your own family circle",
            context={"client_id": client_id},
        )


class HolderAlreadyInCircleError(ValidationError):
    """Raised when a member of one circle tries to hold another."""

    error_code = "HOLDER_ALREADY_IN_CIRCLE"

    def __init__(self, holder_id: str) -> None:
        super().__init__(
            "You are already a member of another family circle",
            context={"holder_id": holder_id},
        )


# =============================================================================
# Authorization Errors
# =============================================================================


class AuthorizationError(LoyaltyLedgerError):
    """Base exception for family circle authorization failures."""

    error_code = "FORBIDDEN"
    status_code = 403


class NotCircleHolderError(AuthorizationError):
    error_code = "NOT_CIRCLE_HOLDER"

    def __init__(self, client_id: str) -> None:
        super().__init__(
            "Only the family circle holder can perform this action",
            context={"client_id": client_id},
        )


class NotInCircleError(AuthorizationError):
    error_code = "NOT_IN_CIRCLE"

    def __init__(self, holder_id: str, member_id: str) -> None:
        super().__init__(
            "You are not a member of this family circle",
            context={"holder_id": holder_id, "member_id": member_id},
        )


class CircleCreditsNotAllowedError(AuthorizationError):
    error_code = "CIRCLE_CREDITS_NOT_ALLOWED"

    def __init__(self, account_id: str) -> None:
        super().__init__(
            "Family circle members are not allowed to credit this account",
            context={"account_id": account_id},
        )


class CircleDebitsNotAllowedError(AuthorizationError):
    error_code = "CIRCLE_DEBITS_NOT_ALLOWED"

    def __init__(self, account_id: str) -> None:
        super().__init__(
            "Family circle members are not allowed to debit this account",
            context={"account_id": account_id},
        )


# =============================================================================
# Balance Errors
# =============================================================================


class InsufficientBalanceError(LoyaltyLedgerError):
    """Raised when a debit would drive an account below zero points."""

    error_code = "INSUFFICIENT_BALANCE"
    status_code = 400

    def __init__(self, account_id: str, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient balance: required {required}, available {available}",
            context={
                "account_id": account_id,
                "required": required,
                "available": available,
            },
        )


# =============================================================================
# Internal Errors
# =============================================================================


class InternalError(LoyaltyLedgerError):
    """Unexpected failure. Logged verbosely, surfaced generically."""

    error_code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    is_operational = False


class DatabaseError(InternalError):
    """Raised when the document store fails."""

    error_code = "DATABASE_ERROR"


class TransactionStateError(DatabaseError):
    """Raised when an atomic transaction is used out of order."""

    error_code = "TRANSACTION_STATE_ERROR"


class DocumentNotFoundError(DatabaseError):
    """Raised when a field update targets a missing document."""

    error_code = "DOCUMENT_NOT_FOUND"

    def __init__(self, path: str) -> None:
        super().__init__(f"No document to update: {path}", context={"path": path})


def error_response(exc: BaseException) -> tuple[int, dict[str, Any]]:
    """Translate any exception into a status code and a safe response body.

    Operational errors keep their code and message. Everything else is logged
    with full detail here and answered with a generic body.
    """
    if isinstance(exc, LoyaltyLedgerError) and exc.is_operational:
        return exc.status_code, exc.to_dict()

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error=str(exc),
        context=getattr(exc, "context", None),
        exc_info=exc,
    )
    return 500, {
        "error": InternalError.error_code,
        "message": GENERIC_ERROR_MESSAGE,
        "context": {},
    }
