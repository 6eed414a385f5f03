"""Celery beat schedule configuration.

Intervals come from ``settings.settlement`` so operators can tune them with
``SETTLEMENT__OUTBOX_RELAY_INTERVAL_SECONDS`` and friends.
"""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "settlement-outbox-relay": {
        "task": "infrastructure.tasks.tasks.settlement.relay_outbox",
        "schedule": settings.settlement.outbox_relay_interval_seconds,
    },
    "settlement-wallet-reconciliation": {
        "task": "infrastructure.tasks.tasks.settlement.reconcile_wallets",
        "schedule": settings.settlement.reconcile_interval_seconds,
    },
}
