"""Custom exceptions for the shop backend."""
from typing import Any, Dict, List, Optional


class ShopError(Exception):
    """Base exception for all domain errors."""

    pass


class ConfigurationError(ShopError):
    """Raised when the environment does not describe a usable configuration."""

    pass


class ValidationFailed(ShopError):
    """Raised when input is malformed or missing required fields."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message)


class NotFound(ShopError):
    """Raised when a referenced record does not exist."""

    def __init__(self, resource: str, identifier: Any = None):
        self.resource = resource
        self.identifier = identifier
        msg = f"{resource} not found"
        if identifier is not None:
            msg = f"{resource} not found: {identifier}"
        super().__init__(msg)


class Conflict(ShopError):
    """Raised when a state-machine guard or uniqueness rule is violated."""

    pass


class Unauthorized(ShopError):
    """Raised when a credential is missing, invalid or expired."""

    pass


class Forbidden(ShopError):
    """Raised when an authenticated caller lacks the role for an operation."""

    pass


class InternalError(ShopError):
    """Raised when rendering or persistence fails unexpectedly."""

    pass


class InvoiceRenderError(InternalError):
    """Raised when an invoice document cannot be produced."""

    def __init__(self, invoice_number: str, reason: str):
        self.invoice_number = invoice_number
        super().__init__(f"Failed to render invoice {invoice_number}: {reason}")
