"""Domain error codes for the admissions module.

Every error carries a stable code, a user-safe message and a ``detail``
mapping naming the ticket, code or constraint involved. Counter values and
other registrants' data never appear in either.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"
    EVENT_UNAVAILABLE = "EVENT_UNAVAILABLE"
    TICKET_UNAVAILABLE = "TICKET_UNAVAILABLE"
    SMS_VERIFICATION_REQUIRED = "SMS_VERIFICATION_REQUIRED"
    FORM_VALIDATION_FAILED = "FORM_VALIDATION_FAILED"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    SOLD_OUT = "SOLD_OUT"
    SALES_WINDOW_CLOSED = "SALES_WINDOW_CLOSED"
    INVALID_CODE = "INVALID_CODE"
    EXPIRED_CODE = "EXPIRED_CODE"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    CODE_TICKET_MISMATCH = "CODE_TICKET_MISMATCH"
    INVALID_REFERRAL_CODE = "INVALID_REFERRAL_CODE"
    SELF_REFERRAL = "SELF_REFERRAL"
    CYCLIC_REFERRAL = "CYCLIC_REFERRAL"
    REFERRAL_EVENT_MISMATCH = "REFERRAL_EVENT_MISMATCH"
    REFERRAL_ALREADY_REDEEMED = "REFERRAL_ALREADY_REDEEMED"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    NOT_EDITABLE = "NOT_EDITABLE"
    NOT_CANCELLABLE = "NOT_CANCELLABLE"
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Malformed intent or a business rule the caller can fix by changing input."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, detail=detail or {})


class ConflictError(DomainError):
    """Request collides with current state (capacity, uniqueness, status)."""


class NotFoundError(DomainError):
    """Requested record does not exist or is not visible to the caller."""


class ForbiddenError(DomainError):
    """Caller may not access the requested record."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(code=ErrorCode.FORBIDDEN, message=message)


class InfrastructureError(DomainError):
    """Storage or transport failure. Partial reservations are released before raising."""

    def __init__(
        self,
        message: str = "Storage failure",
        code: ErrorCode = ErrorCode.INFRASTRUCTURE_ERROR,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, detail=detail or {})


class DeadlineExceededError(InfrastructureError):
    """Raised when a registration attempt runs past its deadline before committing."""

    def __init__(self, stage: str) -> None:
        super().__init__(
            message="Registration timed out, please retry",
            code=ErrorCode.DEADLINE_EXCEEDED,
            detail={"stage": stage},
        )


class InvalidIdError(ValidationError):
    """Raised when an identifier is not a valid UUID."""

    def __init__(self, field_name: str) -> None:
        super().__init__(
            "Invalid identifier format",
            code=ErrorCode.INVALID_ID,
            detail={"field": field_name},
        )


class EventUnavailableError(ValidationError):
    """Raised when an event does not exist, is inactive or hidden."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            "Event does not exist or is closed",
            code=ErrorCode.EVENT_UNAVAILABLE,
            detail={"event_id": event_id},
        )


class TicketUnavailableError(ValidationError):
    """Raised when a ticket does not exist, is inactive, hidden or belongs to another event."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(
            "Ticket does not exist or is closed",
            code=ErrorCode.TICKET_UNAVAILABLE,
            detail={"ticket_id": ticket_id},
        )


class SmsVerificationRequiredError(ValidationError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(
            "This ticket requires a verified phone number",
            code=ErrorCode.SMS_VERIFICATION_REQUIRED,
            detail={"ticket_id": ticket_id},
        )


class FormValidationError(ValidationError):
    """Raised by a FormValidator when the payload does not satisfy the event's fields."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__(
            "Form validation failed",
            code=ErrorCode.FORM_VALIDATION_FAILED,
            detail={"fields": dict(errors)},
        )


class SalesWindowClosedError(ValidationError):
    """Raised when the ticket is outside its sales window."""

    def __init__(self, ticket_id: str, reason: str) -> None:
        message = (
            "Ticket sales have not started yet"
            if reason == "not_started"
            else "Ticket sales have ended"
        )
        super().__init__(
            message,
            code=ErrorCode.SALES_WINDOW_CLOSED,
            detail={"ticket_id": ticket_id, "reason": reason},
        )


class DuplicateRegistrationError(ConflictError):
    """Raised when the email already holds a registration for the event."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            code=ErrorCode.DUPLICATE_REGISTRATION,
            message="This email is already registered for the event",
            detail={"event_id": event_id},
        )


class SoldOutError(ConflictError):
    """Raised when the ticket has no remaining capacity."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(
            code=ErrorCode.SOLD_OUT,
            message="This ticket just sold out",
            detail={"ticket_id": ticket_id},
        )


class InvalidCodeError(ValidationError):
    """Raised when an invitation code is unknown, inactive or required but missing."""

    def __init__(self, code: str | None, reason: str = "unknown") -> None:
        message = (
            "This ticket requires an invitation code"
            if reason == "required"
            else "Invalid invitation code"
        )
        super().__init__(
            message,
            code=ErrorCode.INVALID_CODE,
            detail={"invitation_code": code, "reason": reason},
        )


class ExpiredCodeError(ValidationError):
    """Raised when now is outside the invitation code's validity window."""

    def __init__(self, code: str, reason: str = "expired") -> None:
        message = (
            "This invitation code is not valid yet"
            if reason == "not_yet_valid"
            else "This invitation code has expired"
        )
        super().__init__(
            message,
            code=ErrorCode.EXPIRED_CODE,
            detail={"invitation_code": code, "reason": reason},
        )


class UsageLimitExceededError(ValidationError):
    def __init__(self, code: str) -> None:
        super().__init__(
            "This invitation code has reached its usage limit",
            code=ErrorCode.USAGE_LIMIT_EXCEEDED,
            detail={"invitation_code": code},
        )


class CodeTicketMismatchError(ValidationError):
    def __init__(self, code: str, ticket_id: str) -> None:
        super().__init__(
            "This invitation code does not apply to this ticket",
            code=ErrorCode.CODE_TICKET_MISMATCH,
            detail={"invitation_code": code, "ticket_id": ticket_id},
        )


class InvalidReferralCodeError(ValidationError):
    """Raised when a referral code is unknown or deactivated."""

    def __init__(self, code: str) -> None:
        super().__init__(
            "Invalid referral code",
            code=ErrorCode.INVALID_REFERRAL_CODE,
            detail={"referral_code": code},
        )


class ReferralEventMismatchError(ValidationError):
    def __init__(self, code: str, event_id: str) -> None:
        super().__init__(
            "This referral code belongs to a different event",
            code=ErrorCode.REFERRAL_EVENT_MISMATCH,
            detail={"referral_code": code, "event_id": event_id},
        )


class SelfReferralError(ValidationError):
    def __init__(self, code: str) -> None:
        super().__init__(
            "A registration cannot redeem its own referral code",
            code=ErrorCode.SELF_REFERRAL,
            detail={"referral_code": code},
        )


class CyclicReferralError(ValidationError):
    """Raised when redeeming the code would close a loop in the referral chain."""

    def __init__(self, code: str) -> None:
        super().__init__(
            "This referral code would create a referral loop",
            code=ErrorCode.CYCLIC_REFERRAL,
            detail={"referral_code": code},
        )


class ReferralAlreadyRedeemedError(ValidationError):
    """Raised when the registration was already referred by someone."""

    def __init__(self, registration_id: str) -> None:
        super().__init__(
            "This registration has already used a referral code",
            code=ErrorCode.REFERRAL_ALREADY_REDEEMED,
            detail={"registration_id": registration_id},
        )


class RegistrationNotFoundError(NotFoundError):
    def __init__(self, registration_id: str) -> None:
        super().__init__(
            code=ErrorCode.REGISTRATION_NOT_FOUND,
            message="Registration not found",
            detail={"registration_id": registration_id},
        )


class AlreadyCancelledError(ConflictError):
    def __init__(self, registration_id: str) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_CANCELLED,
            message="Registration has already been cancelled",
            detail={"registration_id": registration_id},
        )


class NotCancellableError(ValidationError):
    def __init__(self, registration_id: str, reason: str) -> None:
        super().__init__(
            "This registration can no longer be cancelled",
            code=ErrorCode.NOT_CANCELLABLE,
            detail={"registration_id": registration_id, "reason": reason},
        )


class NotEditableError(ValidationError):
    def __init__(self, registration_id: str, reason: str) -> None:
        super().__init__(
            "This registration can no longer be edited",
            code=ErrorCode.NOT_EDITABLE,
            detail={"registration_id": registration_id, "reason": reason},
        )
