"""Middleware registration."""

from fastapi import FastAPI

from souk.config import Settings
from souk.middleware.cors import setup_cors
from souk.middleware.error_handler import setup_error_handlers
from souk.middleware.logging import setup_logging
from souk.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware; the last one added (CORS) is outermost."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
