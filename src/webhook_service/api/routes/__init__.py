"""Route modules."""

from . import cron, events, webhooks

__all__ = [
    "cron",
    "events",
    "webhooks",
]
