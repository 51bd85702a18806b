from typing import Any, Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API clients as JSON error bodies."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    """Caller-supplied data is inconsistent (bad split sums, non-positive amounts...)."""

    status_code = 400


class InvalidSplitType(ValidationError):
    def __init__(self, split_type: Any):
        super().__init__(f"Invalid split type: {split_type}")
        self.split_type = split_type


class NotFoundError(ServiceError):
    """Referenced group, expense or split does not exist in the expected group."""

    status_code = 404


class PermissionDeniedError(ServiceError):
    """Actor is not an active member, or lacks the capability for the mutation."""

    status_code = 403


class ComputationError(ServiceError):
    """
    Unexpected failure while computing balances or recording settlements.

    The message is generic; the underlying cause is logged server-side only.
    """

    status_code = 500
