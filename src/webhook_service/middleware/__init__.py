"""aiohttp middlewares."""

from webhook_service.middleware.trace import create_trace_middleware

__all__ = ["create_trace_middleware"]
