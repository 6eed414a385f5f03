"""Convenience entry point for running the settlement Celery worker.

Most deployments invoke the standard Celery CLI
(``celery -A infrastructure.tasks worker -B``); this script is handy for local
runs and Procfile-style runners.
"""
from __future__ import annotations

import sys

from core.logging_config import configure_logging

from .config.celery import NOTIFICATION_QUEUE, SETTLEMENT_QUEUE, celery_app


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    args = argv if argv is not None else sys.argv[1:]
    celery_app.worker_main(["worker", "--hostname=settlement@%h", "-Q", f"{NOTIFICATION_QUEUE},{SETTLEMENT_QUEUE}", *args])


if __name__ == "__main__":
    main()
