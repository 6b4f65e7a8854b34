"""Delivery status transitions and retry backoff."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from webhook_service.core.exceptions import InvalidStatusTransitionError
from webhook_service.domain.enums import DeliveryStatus

DELIVERY_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.EXHAUSTED,
    },
    DeliveryStatus.FAILED: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.EXHAUSTED,
    },
    DeliveryStatus.SUCCESS: set(),
    DeliveryStatus.EXHAUSTED: set(),
}

# Delay before the next attempt, indexed by the attempt that just failed (1-based).
RETRY_BACKOFF: tuple[timedelta, ...] = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=30),
    timedelta(hours=2),
    timedelta(hours=6),
)


def validate_delivery_transition(current: DeliveryStatus, new: DeliveryStatus) -> None:
    allowed = DELIVERY_TRANSITIONS.get(current, set())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid delivery status transition: {current.value} → {new.value}"
        )


def backoff_delay(attempt_number: int) -> timedelta:
    """Delay after failed attempt ``attempt_number``, capped at the last step."""
    if attempt_number < 1:
        raise ValueError("attempt_number is 1-based")
    return RETRY_BACKOFF[min(attempt_number, len(RETRY_BACKOFF)) - 1]


@dataclass(frozen=True)
class AttemptOutcome:
    """New state of a delivery after one HTTP attempt."""

    status: DeliveryStatus
    attempt_number: int
    next_retry_at: datetime | None
    delivered_at: datetime | None = None


def resolve_attempt(
    current: DeliveryStatus,
    *,
    attempt_number: int,
    max_attempts: int,
    succeeded: bool,
    now: datetime,
) -> AttemptOutcome:
    """Compute the outcome of an attempt made on a delivery in state ``current``.

    ``attempt_number`` is the count of attempts made *before* this one.
    A 2xx response is terminal success; anything else consumes an attempt
    and either schedules a retry or exhausts the delivery.
    """
    new_attempt = attempt_number + 1
    if new_attempt > max_attempts:
        raise InvalidStatusTransitionError(
            f"Attempt {new_attempt} exceeds max_attempts={max_attempts}"
        )

    if succeeded:
        outcome = AttemptOutcome(
            status=DeliveryStatus.SUCCESS,
            attempt_number=new_attempt,
            next_retry_at=None,
            delivered_at=now,
        )
    elif new_attempt >= max_attempts:
        outcome = AttemptOutcome(
            status=DeliveryStatus.EXHAUSTED,
            attempt_number=new_attempt,
            next_retry_at=None,
        )
    else:
        outcome = AttemptOutcome(
            status=DeliveryStatus.FAILED,
            attempt_number=new_attempt,
            next_retry_at=now + backoff_delay(new_attempt),
        )

    validate_delivery_transition(current, outcome.status)
    return outcome
