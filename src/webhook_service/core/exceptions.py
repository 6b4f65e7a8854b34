"""Common exceptions for domain and repository layers."""
from __future__ import annotations


class WebhookServiceError(Exception):
    """Base error for service layer."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class InvalidWebhookConfigError(WebhookServiceError):
    """Raised when a webhook configuration write fails validation."""


class InvalidStatusTransitionError(WebhookServiceError):
    """Raised when a delivery attempts an unsupported status change."""
