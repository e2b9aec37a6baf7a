"""Error taxonomy for asset import and lifecycle operations.

Every error carries an HTTP-style ``status_code`` and a machine ``code`` so a
transport layer can render it without knowing the concrete class.
"""

from typing import Any, Dict, Optional


class AssetKitError(Exception):
    """Base class for all assetkit errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a transport-friendly error payload."""
        payload = {"error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class MalformedInputError(AssetKitError, ValueError):
    """Raised when tabular input cannot be parsed into headers and rows."""

    status_code = 400
    code = "MALFORMED_INPUT"


class ValidationError(AssetKitError, ValueError):
    """Raised when a required operation or batch field is missing or invalid."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidStatusError(AssetKitError, ValueError):
    """Raised when a requested asset status is not one of the lifecycle states."""

    status_code = 400
    code = "INVALID_STATUS"

    def __init__(self, status: Any, message: Optional[str] = None):
        super().__init__(message or f"Invalid status: {status!r}")
        self.status = status


class InvalidTransitionError(InvalidStatusError):
    """Raised under the strict policy when a transition is not an allowed edge."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            to_status,
            f"Transition from '{from_status}' to '{to_status}' is not allowed",
        )
        self.from_status = from_status
        self.to_status = to_status


class NotFoundError(AssetKitError, LookupError):
    """Raised when a resource does not exist within the caller's tenant."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class RowError(AssetKitError):
    """A single import row could not be reconciled.

    Caught at the row boundary by the batch loop and recorded in the ledger;
    it never aborts the batch.
    """

    status_code = 422
    code = "ROW_ERROR"

    def __init__(self, message: str, row_number: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message)
        self.row_number = row_number
        self.field = field

    def __str__(self) -> str:
        if self.row_number is not None:
            return f"Row {self.row_number}: {self.message}"
        return self.message
