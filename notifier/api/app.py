"""FastAPI application for the notification engine."""

import uuid

from fastapi import FastAPI, Request

from notifier import __version__
from notifier.container import Services
from notifier.logging import log_context

from .errors import register_error_handlers
from .routes import admin, status, webhooks

REQUEST_ID_HEADER = "X-Request-Id"


def create_app(services: Services) -> FastAPI:
    """Build the HTTP application around an already-wired service graph."""
    app = FastAPI(title="Notification Engine", version=__version__)
    app.state.services = services

    register_error_handlers(app)
    app.include_router(webhooks.router)
    app.include_router(status.router)
    app.include_router(admin.router)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        with log_context(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.get("/healthz", include_in_schema=False)
    def liveness():
        return {"status": "ok"}

    return app
