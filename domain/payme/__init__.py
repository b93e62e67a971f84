"""Payme domain exports."""
from .entity import PAYME_PROVIDER, PaymeTransaction
from .repository import PaymeTransactionRepository
from .service import PaymeTransactionService

__all__ = ["PAYME_PROVIDER", "PaymeTransaction", "PaymeTransactionRepository", "PaymeTransactionService"]
