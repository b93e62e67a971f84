"""
Order repository port.
"""
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from .entity import Order


class OrderRepository(ABC):

    @abstractmethod
    async def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: UUID) -> Optional[Order]:
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """Persist status and Billz sync fields"""
        pass
