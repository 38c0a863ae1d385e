"""Exception types for Shopify and Firestore operations."""
from typing import Optional


class InventoryError(Exception):
    """Base exception for all inventory client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self):
        return self.message


class TransportError(InventoryError):
    """Raised on network failures (connection refused, DNS, reset)."""


class RequestTimeout(TransportError):
    """Raised when a single remote call exceeds its timeout."""


class OperationTimeout(InventoryError):
    """Raised when a whole operation exceeds its deadline."""


class RemoteRejection(InventoryError):
    """Raised when a remote endpoint answers with a non-success status."""

    def __str__(self):
        if self.status_code is not None:
            text = f"HTTP {self.status_code}: {self.message}"
        else:
            text = self.message
        if self.response_text:
            text += f" | Response: {self.response_text}"
        return text


class ParseError(InventoryError):
    """Raised when a response body does not have the expected shape."""


class UnrecoverableTransferError(InventoryError):
    """Raised when a compensating action fails after a primary failure."""

    def __init__(self, original_error: str, rollback_error: str):
        super().__init__(
            f"Transfer failed and rollback failed. "
            f"Original: {original_error}, Rollback: {rollback_error}"
        )
        self.original_error = original_error
        self.rollback_error = rollback_error


class ConfigError(InventoryError):
    """Raised when required configuration is missing or invalid."""


class ValidationError(InventoryError):
    """Raised when caller input is invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def __str__(self):
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message
