from __future__ import annotations

import os

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from app.errors import (
    http_exception_handler,
    redis_error_handler,
    service_error_handler,
    validation_exception_handler,
    value_error_handler,
)
from app.middleware import add_request_context
import app.routers.health as health_router
import app.routers.identities as identities_router
import app.routers.login as login_router
from services.errors import ServiceError


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:4455",
    ]


def create_app() -> FastAPI:
    app = FastAPI(
        title="Identity API",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(add_request_context)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(RedisError, redis_error_handler)

    app.include_router(health_router.router)
    app.include_router(identities_router.router)
    app.include_router(login_router.router)

    return app


app = create_app()
