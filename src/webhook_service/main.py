"""aiohttp application entrypoint."""
from __future__ import annotations

from aiohttp import web
from aiohttp_cors import ResourceOptions, setup as cors_setup

from webhook_service.api.router import setup_routes
from webhook_service.db.migrations import create_migration_runner
from webhook_service.db.pool import close_pool, init_pool
from webhook_service.logging_config import configure_logging
from webhook_service.middleware.trace import create_trace_middleware
from webhook_service.otel import setup_otel
from webhook_service.services.delivery import start_webhook_delivery, stop_webhook_delivery
from webhook_service.settings import APP_SETTINGS_KEY, Settings, get_settings


async def healthcheck(request: web.Request) -> web.Response:
    app_settings: Settings = request.app[APP_SETTINGS_KEY]
    return web.json_response(
        {"status": "ok", "service": app_settings.app_name, "env": app_settings.env}
    )


def create_app(app_settings: Settings | None = None, *, init_database: bool = True) -> web.Application:
    app_settings = app_settings or get_settings()
    app = web.Application()
    app[APP_SETTINGS_KEY] = app_settings

    # Trace middleware first, before CORS and routes.
    app.middlewares.append(create_trace_middleware(app_settings.app_name))

    cors = cors_setup(
        app,
        defaults={
            origin: ResourceOptions(
                allow_credentials=True,
                expose_headers="*",
                allow_headers="*",
                allow_methods="*",
            )
            for origin in app_settings.cors_allowed_origins
        },
    )

    app.router.add_get("/health", healthcheck)
    setup_routes(app)

    if init_database:
        app.on_startup.append(init_pool)
        app.on_startup.append(create_migration_runner())
    app.on_startup.append(start_webhook_delivery)
    # Drain in-flight first attempts before the pool closes.
    app.on_cleanup.append(stop_webhook_delivery)
    if init_database:
        app.on_cleanup.append(close_pool)

    for route in list(app.router.routes()):
        cors.add(route)

    setup_otel(app, app_settings)
    return app


def main() -> None:
    app_settings = get_settings()
    configure_logging(app_settings.log_level, app_settings.log_format)
    web.run_app(create_app(app_settings), host=app_settings.host, port=app_settings.port)


if __name__ == "__main__":
    main()
