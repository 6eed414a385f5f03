"""Pytest bootstrap configuration.

Point settings at a throwaway SQLite database before any application module
is imported, then provide per-test storage, a controllable clock and a
recording notification port.
"""
import os
import tempfile

_BOOTSTRAP_DIR = tempfile.mkdtemp(prefix="settlement-tests-")
os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{_BOOTSTRAP_DIR}/bootstrap.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS__URL", "")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.dtos.orders import ItemStatusUpdateDTO, OrderCreateDTO, OrderItemCreateDTO
from application.dtos.payments import PaymentEventDTO
from application.dtos.wallets import AdjustmentDTO, WalletCreateDTO
from application.services.dispute_service import DisputeApplicationService
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentEventService
from application.services.payout_service import PayoutApplicationService
from application.services.wallet_service import WalletApplicationService
from domain.common.principal import Principal, Role
from domain.order.entity import OrderStatus
from infrastructure.database import build_engine, create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


ADMIN = Principal(user_id="admin-1", role=Role.ADMIN)
CUSTOMER = Principal(user_id="customer-1", role=Role.CUSTOMER)
OTHER_CUSTOMER = Principal(user_id="customer-2", role=Role.CUSTOMER)
VENDOR_A = Principal(user_id="vendor-a", role=Role.VENDOR)
VENDOR_B = Principal(user_id="vendor-b", role=Role.VENDOR)

ADDRESS = {"line1": "42 Galle Road", "city": "Colombo", "postal_code": "00300"}


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    async def publish(self, message) -> None:
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.published.append(message)

    @property
    def event_types(self):
        return [m.event_type for m in self.published]


class Marketplace:
    """Application services wired to one test database, plus scenario shortcuts."""

    def __init__(self, uow_factory, notifier, clock):
        kwargs = {"notifier": notifier, "clock": clock}
        self.uow_factory = uow_factory
        self.notifier = notifier
        self.clock = clock
        self.orders = OrderApplicationService(uow_factory, **kwargs)
        self.payments = PaymentEventService(uow_factory, **kwargs)
        self.wallets = WalletApplicationService(uow_factory, **kwargs)
        self.payouts = PayoutApplicationService(uow_factory, **kwargs)
        self.disputes = DisputeApplicationService(uow_factory, **kwargs)

    async def open_wallet(self, vendor_id: str, rate: str):
        return await self.wallets.open_wallet(
            ADMIN, WalletCreateDTO(vendor_id=vendor_id, commission_rate=Decimal(rate))
        )

    async def fund(self, vendor_id: str, amount: str):
        return await self.wallets.adjust(
            ADMIN, vendor_id, AdjustmentDTO(amount=Decimal(amount), reason="Opening balance transfer")
        )

    async def wallet(self, vendor_id: str):
        return await self.wallets.get_wallet(ADMIN, vendor_id)

    async def place_order(self, *lines, customer=CUSTOMER, discount="0.00", shipping_fee="0.00"):
        """lines: (vendor_id, unit_price, quantity)"""
        dto = OrderCreateDTO(
            items=[
                OrderItemCreateDTO(
                    vendor_id=vendor_id,
                    product_snapshot={"sku": f"{vendor_id}-{n}", "name": f"Item {n}"},
                    unit_price=Decimal(price),
                    quantity=quantity,
                )
                for n, (vendor_id, price, quantity) in enumerate(lines, start=1)
            ],
            address=ADDRESS,
            discount=Decimal(discount),
            shipping_fee=Decimal(shipping_fee),
        )
        return await self.orders.place_order(customer, dto)

    async def pay(self, order, status: str = "COMPLETED"):
        return await self.payments.handle(
            PaymentEventDTO(order_number=order.order_number, payment_ref=f"PAY-{order.id}", status=status)
        )

    async def ship(self, order):
        for item in order.items:
            vendor = Principal(user_id=item.vendor_id, role=Role.VENDOR)
            await self.orders.update_item_status(
                item.id, vendor, ItemStatusUpdateDTO(status=OrderStatus.PROCESSING)
            )
            await self.orders.update_item_status(
                item.id,
                vendor,
                ItemStatusUpdateDTO(status=OrderStatus.SHIPPED, tracking_number=f"TRK-{item.id}"),
            )

    async def paid_order(self, *lines, **kwargs):
        order = await self.place_order(*lines, **kwargs)
        await self.pay(order)
        return order

    async def delivered_order(self, *lines, **kwargs):
        order = await self.paid_order(*lines, **kwargs)
        await self.ship(order)
        await self.orders.mark_delivered(order.id, ADMIN)
        return order

    async def confirmed_order(self, *lines, **kwargs):
        order = await self.delivered_order(*lines, **kwargs)
        await self.orders.confirm_delivery(order.id, CUSTOMER)
        return order


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}")
    await create_tables(engine)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def factory(readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return factory


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def market(uow_factory, notifier, clock):
    return Marketplace(uow_factory, notifier, clock)


@pytest_asyncio.fixture
async def two_vendors(market):
    """Vendor A at 10% and vendor B at 20% commission."""
    await market.open_wallet(VENDOR_A.user_id, "10.00")
    await market.open_wallet(VENDOR_B.user_id, "20.00")
    return market


@pytest.fixture
def app(uow_factory, notifier, clock):
    from main import create_app

    application = create_app()
    application.state.uow_factory = uow_factory
    application.state.notifier = notifier
    application.state.clock = clock
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def headers(principal: Principal) -> dict:
    return {"X-User-Id": principal.user_id, "X-User-Role": principal.role.value}
