"""
Domain event base.

Events are plain dataclasses collected by domain services and written to the
outbox in the same transaction as the state change they describe.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


@dataclass(kw_only=True)
class DomainEvent:
    aggregate_type: ClassVar[str] = "unknown"
    aggregate_key: ClassVar[str] = "id"

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return type(self).__name__

    @property
    def aggregate_id(self) -> str:
        return str(getattr(self, self.aggregate_key))

    def payload(self) -> dict[str, Any]:
        skip = {"event_id", "occurred_at"}
        return {f.name: _jsonable(getattr(self, f.name)) for f in fields(self) if f.name not in skip}
