"""Notification delivery tasks.

Each task receives one committed domain event. Recipients are derived from the
event payload; the transport (email/SMS/push) plugs in behind ``_deliver``.
"""
from __future__ import annotations

from typing import Any, Dict, List

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


def recipients_for(payload: Dict[str, Any]) -> List[str]:
    """Customer first, then vendors, without duplicates."""
    found: List[str] = []
    for key in ("customer_id", "vendor_id"):
        value = payload.get(key)
        if value and value not in found:
            found.append(value)
    for vendor_id in payload.get("vendor_ids") or []:
        if vendor_id not in found:
            found.append(vendor_id)
    return found


def _deliver(recipient: str, event_type: str, payload: Dict[str, Any]) -> None:
    logger.info("notification_sent", recipient=recipient, event_type=event_type)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def deliver_notification(
    self,
    event_id: str,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: Dict[str, Any],
) -> int:
    """Fan a domain event out to the users it concerns; consumers dedupe on event_id."""
    recipients = recipients_for(payload)
    for recipient in recipients:
        _deliver(recipient, event_type, payload)
    logger.info(
        "notification_delivered",
        event_id=event_id,
        event_type=event_type,
        aggregate=f"{aggregate_type}:{aggregate_id}",
        recipients=len(recipients),
    )
    return len(recipients)
