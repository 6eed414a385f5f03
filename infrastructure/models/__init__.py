"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, OrderItemModel, OrderStatusHistoryModel
from .wallet import WalletModel, WalletTransactionModel
from .payout import PayoutRequestModel
from .dispute import DisputeModel, DisputeCommentModel
from .outbox import OutboxEventModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderItemModel",
    "OrderStatusHistoryModel",
    "WalletModel",
    "WalletTransactionModel",
    "PayoutRequestModel",
    "DisputeModel",
    "DisputeCommentModel",
    "OutboxEventModel",
]
