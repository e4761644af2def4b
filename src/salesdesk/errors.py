"""Exception hierarchy raised by the salesdesk business and export layers."""

from __future__ import annotations


class SalesDeskError(Exception):
    """Base class for every error the package raises on purpose."""


class BusinessRuleViolation(SalesDeskError):
    """Raised when a requested operation violates a domain constraint."""


class NotFoundError(BusinessRuleViolation):
    """Raised when a referenced product, customer, or sale is unknown."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale would drive product stock below zero."""

    def __init__(self, product_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Not enough stock available for '{product_name}': "
            f"requested {requested}, available {available}"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InvalidRequestError(SalesDeskError):
    """Raised for malformed report, export, or sale requests."""


class InvalidRangeError(InvalidRequestError):
    """Raised when a report date range is unparseable or inverted."""


class DeliveryFailedError(SalesDeskError):
    """Raised when an outbound report email cannot be dispatched."""


__all__ = [
    "SalesDeskError",
    "BusinessRuleViolation",
    "NotFoundError",
    "InsufficientStockError",
    "InvalidRequestError",
    "InvalidRangeError",
    "DeliveryFailedError",
]
