"""
Outbox 消息实体与仓储接口

领域事件在业务事务内落库为 OutboxMessage，提交后再投递给通知端口；
投递失败只记录，不影响已提交的资金记账。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Sequence

from domain.common.events import DomainEvent


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


@dataclass
class OutboxMessage:
    id: Optional[int]
    event_id: str
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    occurred_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None

    @classmethod
    def from_event(cls, event: DomainEvent) -> "OutboxMessage":
        return cls(
            id=None,
            event_id=event.event_id,
            event_type=event.event_type,
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            payload=event.payload(),
            occurred_at=event.occurred_at,
        )


class OutboxRepository(ABC):
    @abstractmethod
    async def add_many(self, messages: Sequence[OutboxMessage]) -> None:
        """与业务变更同事务写入"""

    @abstractmethod
    async def list_pending(self, limit: int = 100, max_attempts: int = 10) -> List[OutboxMessage]:
        """待投递消息（按发生顺序）"""

    @abstractmethod
    async def mark_dispatched(self, event_id: str, dispatched_at: datetime) -> None:
        ...

    @abstractmethod
    async def mark_failed(self, event_id: str, error: str, *, give_up: bool = False) -> None:
        ...
