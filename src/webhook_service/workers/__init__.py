"""Batch jobs for webhook-service.

Both jobs are stateless and run once per call; an external scheduler
invokes them through the cron endpoints.
"""
from __future__ import annotations

from webhook_service.workers.webhook_cleanup import CleanupResult, webhook_cleanup
from webhook_service.workers.webhook_retries import RetryScheduler, RetrySweepResult

__all__ = [
    "CleanupResult",
    "RetryScheduler",
    "RetrySweepResult",
    "webhook_cleanup",
]
