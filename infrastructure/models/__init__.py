"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .payme_transaction import PaymeTransactionModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PaymeTransactionModel",
]
