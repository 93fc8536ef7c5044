"""Database model type definitions."""

from edukart.models.order import (
    SUB_ORDER_TABLES,
    CheckoutAttempt,
    Order,
    SettlementFailure,
)

__all__ = [
    "SUB_ORDER_TABLES",
    "CheckoutAttempt",
    "Order",
    "SettlementFailure",
]
