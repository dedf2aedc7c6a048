"""Custom domain exceptions for the application."""

# Stable, machine-readable error codes for API consumers.
NOT_FOUND = "NOT_FOUND"
DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
VALIDATION_ERROR = "VALIDATION_ERROR"
FORBIDDEN = "FORBIDDEN"
UNAUTHORIZED = "UNAUTHORIZED"
PARTNER_PENDING_VALIDATION = "PARTNER_PENDING_VALIDATION"


class DomainError(Exception):
    """Base exception for domain/business logic errors."""

    pass


class NotFoundError(DomainError):
    """Raised when a requested account does not exist or has been soft-deleted."""

    pass


class DuplicateResourceError(DomainError):
    """Raised when an operation would give two active accounts the same email."""

    pass


class DomainValidationError(DomainError):
    """Raised when input is malformed or a required scoping field is missing."""

    pass


class ForbiddenError(DomainError):
    """Raised when an authenticated actor is not allowed to perform an action."""

    pass


class UnauthorizedError(DomainError):
    """Raised when credentials or the session token cannot be verified."""

    pass


class PartnerPendingValidationError(UnauthorizedError):
    """Raised at login when a PARTNER account has not been validated yet."""

    pass


class EventPublishError(Exception):
    """Raised by the event notifier when a domain event could not be delivered.

    Never reaches API consumers: the notifier logs it and moves on.
    """

    pass
