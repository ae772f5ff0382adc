"""
FarmLink - Custom Exceptions
=============================
Business-level exceptions that can be caught and converted to HTTP responses.
Each class carries the HTTP status it maps to; main.py registers one handler
for the whole hierarchy.
"""

from typing import Any, Dict, List, Optional


class MarketplaceError(Exception):
    """Base exception for all business logic errors."""
    status_code = 400

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(MarketplaceError):
    """Raised when request data fails validation before any store call."""

    def __init__(self, message: str = "Validation failed", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class AuthenticationError(MarketplaceError):
    """Raised when no usable credentials were presented."""
    status_code = 401


class AuthorizationError(MarketplaceError):
    """Raised when user lacks permission."""
    status_code = 403


class NotFoundError(MarketplaceError):
    """Raised when a requested resource doesn't exist."""
    status_code = 404


class RateLimitError(MarketplaceError):
    status_code = 429

    def __init__(self):
        super().__init__("Too many requests, please try again later")


class InvalidTransitionError(MarketplaceError):
    """Raised when an order or payment status change breaks the state machine."""
    pass


class StoreError(MarketplaceError):
    """Raised when the underlying database call fails."""
    status_code = 500

    def __init__(self, message: str = "Database operation failed", operation: str = ""):
        super().__init__(message)
        self.operation = operation


# ==========================================
# Checkout
# ==========================================

class EmptyCartError(MarketplaceError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class CartConflictError(MarketplaceError):
    """
    Cart content no longer matches live stock.
    conflicts: [{product_id, product_title, reason, requested, available}]
    """

    def __init__(self, conflicts: List[Dict[str, Any]]):
        super().__init__("Some items in your cart are no longer available")
        self.conflicts = conflicts

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["unavailable_items"] = self.conflicts
        return data


class PartialOrderError(MarketplaceError):
    """
    The order header exists but not every line was committed.
    Nothing is rolled back; the detail is what an operator needs to reconcile.
    """
    status_code = 207

    def __init__(
        self,
        order_id: int,
        order_number: str,
        succeeded_lines: List[Dict[str, Any]],
        failed_lines: List[Dict[str, Any]],
    ):
        super().__init__("Order was only partially created and needs reconciliation")
        self.order_id = order_id
        self.order_number = order_number
        self.succeeded_lines = succeeded_lines
        self.failed_lines = failed_lines

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["partial"] = True
        data["warnings"] = [
            f"Product {line['product_id']}: {line['reason']}" for line in self.failed_lines
        ]
        data["data"] = {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "succeeded_lines": self.succeeded_lines,
            "failed_lines": self.failed_lines,
        }
        return data
