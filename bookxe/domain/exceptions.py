"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a machine-readable ``error_code`` that the
application layer surfaces unchanged to callers.
"""

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: ClassVar[str] = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidTransitionError(DomainError):
    """Raised when an action is not legal from the current status for any actor.

    Examples are approving an already approved booking or cancelling a
    booking whose travel time is still inside the grace window.
    """

    error_code: ClassVar[str] = "INVALID_TRANSITION"

    def __init__(
        self,
        booking_id: str,
        current_status: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        """Initialize invalid transition error.

        Args:
            booking_id: ID of the booking.
            current_status: Current status of the booking.
            action: Attempted action.
            reason: Optional explanation.
        """
        message = f"Cannot {action} booking {booking_id} in status '{current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={
                "booking_id": booking_id,
                "current_status": current_status,
                "action": action,
                "reason": reason,
            },
        )


class AuthorizationError(DomainError):
    """Raised when the actor's role does not gate the booking's current status."""

    error_code: ClassVar[str] = "AUTHORIZATION"

    def __init__(
        self,
        booking_id: str,
        actor_role: str,
        current_status: str,
        action: str,
    ) -> None:
        """Initialize authorization error.

        Args:
            booking_id: ID of the booking.
            actor_role: Role of the acting user.
            current_status: Current status of the booking.
            action: Attempted action.
        """
        super().__init__(
            f"Role '{actor_role}' cannot {action} booking {booking_id} "
            f"in status '{current_status}'",
            details={
                "booking_id": booking_id,
                "actor_role": actor_role,
                "current_status": current_status,
                "action": action,
            },
        )


class ConflictError(DomainError):
    """Raised when the optimistic-concurrency precondition fails.

    The persisted status changed between read and write. Callers should
    re-fetch the booking before retrying.
    """

    error_code: ClassVar[str] = "CONFLICT"

    def __init__(
        self,
        booking_id: str,
        expected_status: str,
        actual_status: str | None = None,
    ) -> None:
        """Initialize conflict error.

        Args:
            booking_id: ID of the booking.
            expected_status: Status the writer expected.
            actual_status: Status found in the store, when known.
        """
        message = (
            f"Booking {booking_id} is no longer in status '{expected_status}'"
        )
        if actual_status:
            message = f"{message} (now '{actual_status}')"
        super().__init__(
            message,
            details={
                "booking_id": booking_id,
                "expected_status": expected_status,
                "actual_status": actual_status,
            },
        )


class InconsistentBookingError(InvalidTransitionError):
    """Raised when a stored status does not match its stage flags."""

    def __init__(self, booking_id: str, current_status: str, derived_status: str) -> None:
        """Initialize inconsistent booking error.

        Args:
            booking_id: ID of the booking.
            current_status: Status stored on the record.
            derived_status: Status implied by the stage flags.
        """
        super().__init__(
            booking_id=booking_id,
            current_status=current_status,
            action="act on",
            reason=f"stage flags imply '{derived_status}'",
        )
        self.details["derived_status"] = derived_status


# ============================================================================
# Booking Errors
# ============================================================================


class BookingNotFoundError(DomainError):
    """Raised when a booking does not exist."""

    error_code: ClassVar[str] = "NOT_FOUND"

    def __init__(self, booking_id: str) -> None:
        """Initialize booking not found error.

        Args:
            booking_id: ID of the booking.
        """
        super().__init__(
            f"Booking not found: {booking_id}",
            details={"booking_id": booking_id},
        )


class ValidationError(DomainError):
    """Raised when input fields violate a domain rule."""

    error_code: ClassVar[str] = "VALIDATION"

    def __init__(self, field: str, reason: str) -> None:
        """Initialize validation error.

        Args:
            field: Offending field name.
            reason: Why the value is invalid.
        """
        super().__init__(
            f"Invalid {field}: {reason}",
            details={"field": field, "reason": reason},
        )


# ============================================================================
# Infrastructure-facing Errors
# ============================================================================


class PersistenceError(DomainError):
    """Raised by stores when the underlying storage call fails."""

    error_code: ClassVar[str] = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        """Initialize persistence error.

        Args:
            operation: Store operation that failed.
            cause: Underlying exception, if any.
        """
        message = f"Storage operation '{operation}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, details={"operation": operation})
        self.cause = cause
