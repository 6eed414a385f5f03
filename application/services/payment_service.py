"""
Application service consuming verified payment outcomes.

Signature verification and gateway specifics stay with the payment provider
integration; this service only maps an outcome onto the order state machine.
"""
from __future__ import annotations

from application.dtos.orders import OrderTransitionDTO
from application.dtos.payments import PaymentEventDTO
from application.services.base import DomainServices, SettlementApplicationService
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException


logger = get_logger(__name__)


class PaymentEventService(SettlementApplicationService):
    async def handle(self, event: PaymentEventDTO) -> OrderTransitionDTO:
        logger.info(
            "payment_event_received",
            order_number=event.order_number,
            status=event.status,
            payment_ref=event.payment_ref,
        )

        async def _op(s: DomainServices):
            order = await s.uow.order_repository.get_by_number(event.order_number, for_update=True)
            if order is None:
                raise OrderNotFoundException(event.order_number)
            if event.status == "COMPLETED":
                return await s.orders.confirm_payment(order, event.payment_ref)
            return await s.orders.fail_payment(order, event.reason or f"Payment {event.status.lower()}")

        result = await self._execute(_op, name=f"payment_{event.status.lower()}")
        logger.info(
            "payment_event_applied",
            order_number=event.order_number,
            from_status=result.previous_status.value,
            to_status=result.current_status.value,
            changed=result.changed,
        )
        return OrderTransitionDTO.from_transition(result)
