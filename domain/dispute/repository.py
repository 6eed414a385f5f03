"""
争议仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Dispute, DisputeComment, DisputeStatus


class DisputeRepository(ABC):
    """争议仓储抽象接口"""

    @abstractmethod
    async def create(self, dispute: Dispute) -> Dispute:
        """创建争议"""

    @abstractmethod
    async def get_by_id(self, dispute_id: int, *, for_update: bool = False) -> Optional[Dispute]:
        """根据ID获取争议（含评论）"""

    @abstractmethod
    async def update(self, dispute: Dispute) -> Dispute:
        """以 version 为条件更新，版本不一致抛出 ConcurrencyConflictException"""

    @abstractmethod
    async def add_comment(self, comment: DisputeComment) -> DisputeComment:
        """追加评论"""

    @abstractmethod
    async def exists_active_for_order(self, order_id: int) -> bool:
        """订单是否已有 OPEN / IN_REVIEW 的争议"""

    @abstractmethod
    async def list(
        self,
        *,
        customer_id: Optional[str] = None,
        status: Optional[DisputeStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Dispute]:
        ...

    @abstractmethod
    async def count(self, *, customer_id: Optional[str] = None, status: Optional[DisputeStatus] = None) -> int:
        ...
