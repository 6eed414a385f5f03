"""调用方身份（已由外部认证层校验），领域层只关心 id 与角色。"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from domain.common.exceptions import ForbiddenActionException


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SYSTEM)

    def require(self, *roles: Role) -> None:
        """校验角色；SYSTEM 视为可信内部调用"""
        if self.role is Role.SYSTEM or self.role in roles:
            return
        allowed = ", ".join(r.value for r in roles)
        raise ForbiddenActionException(f"Requires role {allowed}")


SYSTEM = Principal(user_id="system", role=Role.SYSTEM)
