"""
提现仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import PayoutRequest, PayoutStatus


class PayoutRepository(ABC):
    """提现仓储抽象接口"""

    @abstractmethod
    async def create(self, payout: PayoutRequest) -> PayoutRequest:
        """创建提现申请"""

    @abstractmethod
    async def get_by_id(self, payout_id: int, *, for_update: bool = False) -> Optional[PayoutRequest]:
        """根据ID获取提现申请"""

    @abstractmethod
    async def update(self, payout: PayoutRequest) -> PayoutRequest:
        """以 version 为条件更新，版本不一致抛出 ConcurrencyConflictException"""

    @abstractmethod
    async def exists_pending(self, wallet_id: int) -> bool:
        """钱包是否已有待审核的提现申请"""

    @abstractmethod
    async def list(
        self,
        *,
        vendor_id: Optional[str] = None,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[PayoutRequest]:
        ...

    @abstractmethod
    async def count(self, *, vendor_id: Optional[str] = None, status: Optional[PayoutStatus] = None) -> int:
        ...
