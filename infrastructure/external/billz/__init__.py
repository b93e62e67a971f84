"""Billz inventory/billing API integration."""
from .client import BillzAPIError, BillzAuthError, BillzClient, BillzResponse, TokenCache, build_billz_url
from .orders import BillzOrderGateway, payment_type_label, round_paid_amount

__all__ = [
    "BillzAPIError",
    "BillzAuthError",
    "BillzClient",
    "BillzResponse",
    "TokenCache",
    "build_billz_url",
    "BillzOrderGateway",
    "payment_type_label",
    "round_paid_amount",
]
