"""
钱包仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import ReferenceType, TransactionType, Wallet, WalletTransaction


class WalletRepository(ABC):
    """钱包仓储抽象接口"""

    @abstractmethod
    async def create(self, wallet: Wallet) -> Wallet:
        """创建钱包（vendor_id 唯一）"""

    @abstractmethod
    async def get_by_id(self, wallet_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        """根据ID获取钱包；for_update 时加行锁"""

    @abstractmethod
    async def get_by_vendor_id(self, vendor_id: str, *, for_update: bool = False) -> Optional[Wallet]:
        """根据商家ID获取钱包"""

    @abstractmethod
    async def update(self, wallet: Wallet) -> Wallet:
        """
        以读取时的 version 为条件写回钱包并递增 version

        版本不一致时抛出 ConcurrencyConflictException。
        """

    @abstractmethod
    async def list_ids(self) -> List[int]:
        """全部钱包ID（对账用）"""


class WalletTransactionRepository(ABC):
    """流水仓储：只追加"""

    @abstractmethod
    async def add(self, transaction: WalletTransaction) -> WalletTransaction:
        """追加流水"""

    @abstractmethod
    async def list_by_wallet(
        self,
        wallet_id: int,
        *,
        type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[WalletTransaction]:
        """分页查询流水（新到旧）"""

    @abstractmethod
    async def count_by_wallet(
        self,
        wallet_id: int,
        *,
        type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        ...

    @abstractmethod
    async def list_for_replay(self, wallet_id: int) -> List[WalletTransaction]:
        """按写入顺序返回全部流水"""

    @abstractmethod
    async def list_by_reference(
        self,
        wallet_id: int,
        reference_type: ReferenceType,
        reference_id: int,
    ) -> List[WalletTransaction]:
        """某个业务对象在该钱包下产生的流水"""
