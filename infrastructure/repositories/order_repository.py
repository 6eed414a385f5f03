"""
订单仓储实现 - 订单聚合（订单、订单项、状态历史）的持久化
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrencyConflictException
from domain.order.entity import Order, OrderItem, OrderStatus, StatusHistoryEntry
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel, OrderStatusHistoryModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现；订单项与状态历史按需单独查询"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _item_to_entity(model: OrderItemModel) -> OrderItem:
        return OrderItem(
            id=model.id,
            order_id=model.order_id,
            vendor_id=model.vendor_id,
            product_snapshot=model.product_snapshot or {},
            unit_price=Decimal(str(model.unit_price)),
            quantity=model.quantity,
            commission_rate=Decimal(str(model.commission_rate)),
            status=OrderStatus(model.status),
            tracking_number=model.tracking_number,
            tracking_url=model.tracking_url,
            shipped_at=model.shipped_at,
        )

    @staticmethod
    def _history_to_entity(model: OrderStatusHistoryModel) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=model.id,
            status=OrderStatus(model.status),
            sequence=model.sequence,
            created_at=model.created_at,
            note=model.note,
            actor_id=model.actor_id,
            actor_role=model.actor_role,
        )

    def _to_entity(
        self,
        model: OrderModel,
        items: List[OrderItemModel],
        history: List[OrderStatusHistoryModel],
    ) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_number=model.order_number,
            customer_id=model.customer_id,
            items=[self._item_to_entity(i) for i in items],
            subtotal=Decimal(str(model.subtotal)),
            discount=Decimal(str(model.discount)),
            shipping_fee=Decimal(str(model.shipping_fee)),
            total=Decimal(str(model.total)),
            address_snapshot=model.address_snapshot or {},
            coupon_snapshot=model.coupon_snapshot,
            status=OrderStatus(model.status),
            history=[self._history_to_entity(h) for h in history],
            payment_ref=model.payment_ref,
            payment_confirmed_at=model.payment_confirmed_at,
            cancel_reason=model.cancel_reason,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _history_model(self, order_id: int, entry: StatusHistoryEntry) -> OrderStatusHistoryModel:
        return OrderStatusHistoryModel(
            order_id=order_id,
            sequence=entry.sequence,
            status=entry.status.value,
            note=entry.note,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            created_at=entry.created_at,
        )

    async def _load(self, model: OrderModel) -> Order:
        items = await self.session.execute(
            select(OrderItemModel)
            .where(OrderItemModel.order_id == model.id)
            .order_by(OrderItemModel.id)
            .execution_options(populate_existing=True)
        )
        history = await self.session.execute(
            select(OrderStatusHistoryModel)
            .where(OrderStatusHistoryModel.order_id == model.id)
            .order_by(OrderStatusHistoryModel.sequence)
        )
        return self._to_entity(model, list(items.scalars().all()), list(history.scalars().all()))

    async def _get_one(self, *criteria, for_update: bool) -> Optional[Order]:
        query = select(OrderModel).where(*criteria).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_order = result.scalar_one_or_none()
        return await self._load(db_order) if db_order else None

    async def create(self, order: Order) -> Order:
        """创建订单（含订单项与首条状态历史）"""
        db_order = OrderModel(
            order_number=order.order_number,
            customer_id=order.customer_id,
            subtotal=order.subtotal,
            discount=order.discount,
            shipping_fee=order.shipping_fee,
            total=order.total,
            address_snapshot=order.address_snapshot,
            coupon_snapshot=order.coupon_snapshot,
            status=order.status.value,
            payment_ref=order.payment_ref,
            payment_confirmed_at=order.payment_confirmed_at,
            cancel_reason=order.cancel_reason,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at or order.created_at,
        )
        self.session.add(db_order)
        await self.session.flush()

        self.session.add_all(
            [
                OrderItemModel(
                    order_id=db_order.id,
                    vendor_id=item.vendor_id,
                    product_snapshot=item.product_snapshot,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    total=item.total,
                    commission_rate=item.commission_rate,
                    status=item.status.value,
                    tracking_number=item.tracking_number,
                    tracking_url=item.tracking_url,
                    shipped_at=item.shipped_at,
                )
                for item in order.items
            ]
        )
        self.session.add_all([self._history_model(db_order.id, h) for h in order.history])
        await self.session.flush()

        logger.info(
            "order_created",
            order_id=db_order.id,
            order_number=db_order.order_number,
            customer_id=db_order.customer_id,
            total=str(db_order.total),
            items=len(order.items),
        )
        return await self._load(db_order)

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据ID获取完整订单聚合"""
        return await self._get_one(OrderModel.id == order_id, for_update=for_update)

    async def get_by_number(self, order_number: str, *, for_update: bool = False) -> Optional[Order]:
        """根据订单号获取订单"""
        return await self._get_one(OrderModel.order_number == order_number, for_update=for_update)

    async def get_by_item_id(self, item_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据订单项ID获取所属订单"""
        result = await self.session.execute(select(OrderItemModel.order_id).where(OrderItemModel.id == item_id))
        order_id = result.scalar_one_or_none()
        if order_id is None:
            return None
        return await self.get_by_id(order_id, for_update=for_update)

    async def update(self, order: Order) -> Order:
        """以 version 为条件写回订单与订单项，并追加未持久化的状态历史"""
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == order.version)
            .values(
                status=order.status.value,
                payment_ref=order.payment_ref,
                payment_confirmed_at=order.payment_confirmed_at,
                cancel_reason=order.cancel_reason,
                updated_at=order.updated_at,
                version=OrderModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("order_version_conflict", order_id=order.id, expected_version=order.version)
            raise ConcurrencyConflictException("order", order.id, order.version)
        order.version += 1

        for item in order.items:
            await self.session.execute(
                update(OrderItemModel)
                .where(OrderItemModel.id == item.id)
                .values(
                    status=item.status.value,
                    tracking_number=item.tracking_number,
                    tracking_url=item.tracking_url,
                    shipped_at=item.shipped_at,
                )
                .execution_options(synchronize_session=False)
            )

        new_entries = [h for h in order.history if h.id is None]
        models = [self._history_model(order.id, h) for h in new_entries]
        self.session.add_all(models)
        await self.session.flush()
        for entry, model in zip(new_entries, models):
            entry.id = model.id

        logger.info(
            "order_updated",
            order_id=order.id,
            status=order.status.value,
            version=order.version,
            history_added=len(new_entries),
        )
        return order

    async def list_by_customer(
        self,
        customer_id: str,
        *,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        query = select(OrderModel).where(OrderModel.customer_id == customer_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        # 按创建时间倒序，再按ID倒序，确保分页稳定
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [await self._load(m) for m in result.scalars().all()]

    async def count_by_customer(self, customer_id: str, *, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(OrderModel.id)).where(OrderModel.customer_id == customer_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()
