"""Worker: purge webhook deliveries past the retention window."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from webhook_service.repositories.webhooks import WebhookDeliveryRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CleanupResult:
    deleted: int
    cutoff: datetime

    def as_dict(self) -> dict[str, object]:
        return {"deleted": self.deleted, "cutoff_date": self.cutoff.isoformat()}


async def webhook_cleanup(
    deliveries: WebhookDeliveryRepository, now: datetime, *, retention_days: int = 30
) -> CleanupResult:
    """Delete deliveries of any status created more than ``retention_days`` ago."""
    cutoff = now - timedelta(days=retention_days)
    deleted = await deliveries.delete_created_before(cutoff)
    logger.info("webhook cleanup completed", deleted=deleted, retention_days=retention_days)
    return CleanupResult(deleted=deleted, cutoff=cutoff)
