"""Middleware registration."""

from fastapi import FastAPI

from lifequest.config import Settings
from lifequest.middleware.cors import setup_cors
from lifequest.middleware.error_handler import setup_error_handlers
from lifequest.middleware.logging import setup_logging
from lifequest.middleware.rate_limit import RateLimitMiddleware
from lifequest.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS stays outermost so it also wraps 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
