"""Registered tasks: event notifications and periodic settlement jobs."""
from . import notifications, settlement  # noqa: F401

__all__ = ["notifications", "settlement"]
