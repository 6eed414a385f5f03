"""
订单仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单（含订单项与首条状态历史）"""

    @abstractmethod
    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据ID获取完整订单聚合"""

    @abstractmethod
    async def get_by_number(self, order_number: str, *, for_update: bool = False) -> Optional[Order]:
        """根据订单号获取订单"""

    @abstractmethod
    async def get_by_item_id(self, item_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据订单项ID获取所属订单"""

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """
        以 version 为条件写回订单状态、订单项，并追加新的状态历史

        版本不一致时抛出 ConcurrencyConflictException。
        """

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: str,
        *,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        ...

    @abstractmethod
    async def count_by_customer(self, customer_id: str, *, status: Optional[OrderStatus] = None) -> int:
        ...
