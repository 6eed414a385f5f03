"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


class InvalidTransitionException(BusinessException):
    """状态机拒绝的状态变更，携带当前状态与目标状态"""

    def __init__(self, entity: str, current: str, attempted: str, *, reason: Optional[str] = None):
        self.current = current
        self.attempted = attempted
        message = f"Cannot move {entity} from {current} to {attempted}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message=message,
            error_type="InvalidTransition",
            details={"entity": entity, "current": current, "attempted": attempted},
            field="status",
            message_key=f"{entity}.transition.invalid",
        )


class InsufficientBalanceException(BusinessException):
    """记账后余额将为负，整笔操作被拒绝"""

    def __init__(self, wallet_id: Optional[int], bucket: str, balance: Decimal, required: Decimal):
        super().__init__(
            code=BusinessCode.INSUFFICIENT_BALANCE,
            message=f"Insufficient {bucket} balance: {balance} available, {required} required",
            error_type="InsufficientBalance",
            details={
                "wallet_id": wallet_id,
                "bucket": bucket,
                "balance": str(balance),
                "required": str(required),
            },
            message_key="wallet.balance.insufficient",
        )


class AlreadyTerminalException(BusinessException):
    def __init__(self, entity: str, entity_id: Optional[int], status: str):
        self.status = status
        super().__init__(
            code=BusinessCode.ALREADY_TERMINAL,
            message=f"{entity.capitalize()} {entity_id} is already {status}",
            error_type="AlreadyTerminal",
            details={"entity": entity, "id": entity_id, "status": status},
            message_key=f"{entity}.already_terminal",
        )


class ConcurrencyConflictException(BusinessException):
    """乐观锁版本不一致；调用方应重试整个操作而不仅是写入"""

    def __init__(self, entity: str, entity_id: Optional[int], expected_version: Optional[int] = None):
        super().__init__(
            code=BusinessCode.CONCURRENCY_CONFLICT,
            message=f"{entity.capitalize()} {entity_id} was modified concurrently, retry the operation",
            error_type="ConcurrencyConflict",
            details={"entity": entity, "id": entity_id, "expected_version": expected_version},
            message_key="concurrency.conflict",
        )


class StorageUnavailableException(BusinessException):
    """存储层不可用（可重试），与业务失败严格区分"""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Storage is temporarily unavailable, please retry",
            error_type="Unavailable",
            details={"reason": reason} if reason else None,
            message_key="storage.unavailable",
        )


class ForbiddenActionException(BusinessException):
    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            message_key="auth.forbidden",
        )


class DuplicateResourceException(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None, field: Optional[str] = None):
        super().__init__(
            code=BusinessCode.DUPLICATE_RESOURCE,
            message=message,
            error_type="DuplicateResource",
            details=details,
            field=field,
            message_key="resource.duplicate",
        )


class _NotFoundException(BusinessException):
    entity = "resource"

    def __init__(self, identifier: Optional[object] = None):
        details = {"id": identifier} if identifier is not None else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{self.entity.capitalize()} not found",
            error_type=f"{self.entity.title().replace(' ', '')}NotFound",
            details=details,
            message_key=f"{self.entity.replace(' ', '_')}.not_found",
        )


class OrderNotFoundException(_NotFoundException):
    entity = "order"


class OrderItemNotFoundException(_NotFoundException):
    entity = "order item"


class WalletNotFoundException(_NotFoundException):
    entity = "wallet"


class PayoutNotFoundException(_NotFoundException):
    entity = "payout"


class DisputeNotFoundException(_NotFoundException):
    entity = "dispute"
