"""Webhook repositories (configurations + delivery log)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.state_machine import AttemptOutcome
from webhook_service.domain.webhooks import WebhookConfig, WebhookDelivery
from webhook_service.repositories.base import BaseRepository

_OPEN_STATUSES = (DeliveryStatus.PENDING.value, DeliveryStatus.FAILED.value)


class WebhookConfigRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookConfig:
        payload = dict(record)
        payload.pop("inserted", None)
        return WebhookConfig.model_validate(payload)

    async def get_by_id(self, config_id: UUID) -> WebhookConfig | None:
        record = await self._fetchrow("SELECT * FROM webhook_configs WHERE id = $1", config_id)
        return self._to_model(record) if record else None

    async def get_for_owner(self, qr_code_id: UUID, user_id: UUID) -> WebhookConfig | None:
        record = await self._fetchrow(
            "SELECT * FROM webhook_configs WHERE qr_code_id = $1 AND user_id = $2",
            qr_code_id,
            user_id,
        )
        return self._to_model(record) if record else None

    async def get_active(
        self, qr_code_id: UUID, *, user_id: UUID | None = None
    ) -> WebhookConfig | None:
        """Active config for a QR code, optionally scoped to its owner.

        This is the hot path on every scan; it hits the unique index on
        ``qr_code_id`` and returns nothing for almost all QR codes.
        """
        if user_id is None:
            record = await self._fetchrow(
                "SELECT * FROM webhook_configs WHERE qr_code_id = $1 AND is_active = true",
                qr_code_id,
            )
        else:
            record = await self._fetchrow(
                """
                SELECT * FROM webhook_configs
                WHERE qr_code_id = $1 AND user_id = $2 AND is_active = true
                """,
                qr_code_id,
                user_id,
            )
        return self._to_model(record) if record else None

    async def upsert(
        self,
        *,
        qr_code_id: UUID,
        user_id: UUID,
        url: str,
        is_active: bool,
        events: list[str],
        secret: str,
    ) -> Tuple[WebhookConfig, bool]:
        """Create or update the config of a QR code.

        ``secret`` is only written on insert. Returns ``(config, created)``.
        Raises :class:`NotFoundError` when the QR code's config belongs to
        another account.
        """
        record = await self._fetchrow(
            """
            INSERT INTO webhook_configs (qr_code_id, user_id, url, secret, is_active, events)
            VALUES ($1, $2, $3, $4, $5, $6::text[])
            ON CONFLICT (qr_code_id) DO UPDATE
            SET url = EXCLUDED.url,
                is_active = EXCLUDED.is_active,
                events = EXCLUDED.events,
                updated_at = now()
            WHERE webhook_configs.user_id = EXCLUDED.user_id
            RETURNING *, (xmax = 0) AS inserted
            """,
            qr_code_id,
            user_id,
            url,
            secret,
            is_active,
            events,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")
        return self._to_model(record), bool(record["inserted"])

    async def delete(self, qr_code_id: UUID, user_id: UUID) -> None:
        record = await self._fetchrow(
            """
            DELETE FROM webhook_configs
            WHERE qr_code_id = $1 AND user_id = $2
            RETURNING id
            """,
            qr_code_id,
            user_id,
        )
        if record is None:
            raise NotFoundError("Webhook config not found")


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookDelivery:
        return WebhookDelivery.model_validate(WebhookDeliveryRepository._normalize(dict(record)))

    @staticmethod
    def _normalize(payload: dict[str, Any]) -> dict[str, Any]:
        payload.pop("total_count", None)
        value = payload.get("payload")
        if isinstance(value, str):
            payload["payload"] = json.loads(value)
        return payload

    async def create(
        self,
        *,
        delivery_id: UUID,
        webhook_config_id: UUID,
        event_ref: str | None,
        event_type: str,
        payload: dict[str, Any],
        max_attempts: int,
    ) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (
                id,
                webhook_config_id,
                event_ref,
                event_type,
                payload,
                status,
                attempt_number,
                max_attempts
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, 'pending', 0, $6)
            RETURNING *
            """,
            delivery_id,
            webhook_config_id,
            event_ref,
            event_type,
            json.dumps(payload),
            max_attempts,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, delivery_id: UUID) -> WebhookDelivery | None:
        record = await self._fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)
        return self._to_model(record) if record else None

    async def record_attempt(
        self,
        delivery_id: UUID,
        *,
        previous_attempt: int,
        outcome: AttemptOutcome,
        http_status: int | None,
        response_body: str | None,
        error_message: str | None,
    ) -> bool:
        """Persist the result of one attempt.

        Only applies while the delivery is still open and nobody else has
        recorded an attempt since it was loaded. Returns whether a row changed.
        """
        result = await self._execute(
            """
            UPDATE webhook_deliveries
            SET status = $2,
                attempt_number = $3,
                next_retry_at = $4,
                delivered_at = COALESCE($5, delivered_at),
                http_status = $6,
                response_body = $7,
                error_message = $8
            WHERE id = $1
              AND status = ANY($9::text[])
              AND attempt_number = $10
            """,
            delivery_id,
            outcome.status.value,
            outcome.attempt_number,
            outcome.next_retry_at,
            outcome.delivered_at,
            http_status,
            response_body,
            error_message,
            list(_OPEN_STATUSES),
            previous_attempt,
        )
        return self._affected_rows(result) > 0

    async def park(self, delivery_id: UUID, error_message: str) -> bool:
        """Mark an open delivery failed with no retry scheduled."""
        result = await self._execute(
            """
            UPDATE webhook_deliveries
            SET status = 'failed',
                next_retry_at = NULL,
                error_message = $2
            WHERE id = $1
              AND status = ANY($3::text[])
            """,
            delivery_id,
            error_message,
            list(_OPEN_STATUSES),
        )
        return self._affected_rows(result) > 0

    async def list_due_for_retry(self, now: datetime, *, limit: int = 50) -> List[WebhookDelivery]:
        """Failed deliveries whose retry time has come, oldest due first.

        No rows are claimed: concurrent callers may receive the same rows.
        Deliveries left ``pending`` by a lost first attempt are not selected.
        """
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_deliveries
            WHERE status = 'failed'
              AND next_retry_at <= $1
            ORDER BY next_retry_at ASC
            LIMIT $2
            """,
            now,
            limit,
        )
        return [self._to_model(r) for r in records]

    async def list_for_config(
        self,
        webhook_config_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        where = ["webhook_config_id = $1"]
        values: list[Any] = [webhook_config_id]
        idx = 2
        if status is not None:
            where.append(f"status = ${idx}")
            values.append(status.value)
            idx += 1
        where_sql = " AND ".join(where)
        query = f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        values.extend([limit, offset])
        records = await self._fetch(query, *values)
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.get("total_count")
            if total_value is not None:
                total = int(total_value)
            items.append(WebhookDelivery.model_validate(self._normalize(rec_dict)))
        if total is None:
            total = await self._count_for_config(webhook_config_id, status=status)
        return items, total

    async def _count_for_config(
        self, webhook_config_id: UUID, *, status: DeliveryStatus | None = None
    ) -> int:
        if status is None:
            record = await self._fetchrow(
                "SELECT COUNT(*) AS total FROM webhook_deliveries WHERE webhook_config_id = $1",
                webhook_config_id,
            )
        else:
            record = await self._fetchrow(
                """
                SELECT COUNT(*) AS total FROM webhook_deliveries
                WHERE webhook_config_id = $1 AND status = $2
                """,
                webhook_config_id,
                status.value,
            )
        return int(record["total"]) if record else 0

    async def delete_created_before(self, cutoff: datetime) -> int:
        """Delete deliveries created strictly before ``cutoff``, any status."""
        result = await self._execute(
            "DELETE FROM webhook_deliveries WHERE created_at < $1",
            cutoff,
        )
        return self._affected_rows(result)
