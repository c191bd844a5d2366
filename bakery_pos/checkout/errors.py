# bakery_pos/checkout/errors.py
"""Error taxonomy of the checkout engine.

Every error here is recoverable at the checkout-session level: the HTTP layer
maps them to JSON responses and the session keeps its state.
"""
from __future__ import annotations

from typing import Optional


class CheckoutError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError):
    """A required field is missing or invalid. Names the first violation."""

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Missing or invalid field: {field}")
        self.field = field


class ReconciliationError(CheckoutError):
    """Payment amounts don't add up to the expected total within epsilon."""

    def __init__(self, message: str, expected_cents: Optional[int] = None, actual_cents: Optional[int] = None):
        super().__init__(message)
        self.expected_cents = expected_cents
        self.actual_cents = actual_cents


class ExternalServiceError(CheckoutError):
    """A collaborator (coupon, customer, order, attachment, printer) failed."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
