"""Worker: retry failed webhook deliveries that are due."""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Awaitable, Callable

import structlog

from webhook_service.repositories.webhooks import WebhookDeliveryRepository
from webhook_service.services.delivery import DeliveryExecutor

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetrySweepResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class RetryScheduler:
    """Drives the executor over one batch of due deliveries, one at a time."""

    def __init__(
        self,
        deliveries: WebhookDeliveryRepository,
        executor: DeliveryExecutor,
        *,
        batch_size: int = 50,
        pause_seconds: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._deliveries = deliveries
        self._executor = executor
        self._batch_size = batch_size
        self._pause_seconds = pause_seconds
        self._sleep = sleep

    async def run(self, now: datetime) -> RetrySweepResult:
        due = await self._deliveries.list_due_for_retry(now, limit=self._batch_size)
        if not due:
            return RetrySweepResult()

        succeeded = 0
        failed = 0
        for index, delivery in enumerate(due):
            try:
                if await self._executor.deliver(delivery.id):
                    succeeded += 1
                else:
                    failed += 1
            except Exception:
                logger.exception("webhook retry failed", delivery_id=str(delivery.id))
                failed += 1

            if index < len(due) - 1:
                await self._sleep(self._pause_seconds)

        result = RetrySweepResult(processed=len(due), succeeded=succeeded, failed=failed)
        logger.info("webhook retry sweep completed", **result.as_dict())
        return result
