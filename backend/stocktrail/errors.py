# backend/stocktrail/errors.py
"""
Error taxonomy shared by every service.

Each kind carries a stable outward signal (``http_status`` + ``code``) so the
HTTP layer can translate without inspecting messages.
"""
from __future__ import annotations


class StocktrailError(Exception):
    """Base class for domain errors."""
    http_status = 500
    code = "internal_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(StocktrailError):
    """Referenced product or invoice does not exist."""
    http_status = 404
    code = "not_found"


class ValidationError(StocktrailError, ValueError):
    """400-level input problem."""
    http_status = 400
    code = "invalid_input"


class InvalidQuantityError(ValidationError):
    """Order quantity is not a positive integer."""


class OutOfStockError(StocktrailError):
    """Order placed against a product with no stock left."""
    http_status = 422
    code = "out_of_stock"


class ConflictError(StocktrailError):
    """
    409-level conflict.

    Raised when a sequence or stock race surfaces despite the atomic
    primitives; treat as a bug, not a user error.
    """
    http_status = 409
    code = "conflict"
