"""Платёжные рельсы для выплат рефереров."""

from .base import PaymentRail, RailRegistry, TransferResult
from .paypal import PayPalRail
from .stripe_connect import StripeConnectRail

__all__ = [
    "PayPalRail",
    "PaymentRail",
    "RailRegistry",
    "StripeConnectRail",
    "TransferResult",
]
