import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from apps.api.middlewares.metrics import MetricsMiddleware
from apps.api.routers import admin, auth, health, likes, matches, messages, privacy, profile, reports, wallet
from apps.persona.provider import enricher
from apps.workers.notifier import notifier
from core import close_redis
from core.config import settings
from core.errors import AppError, app_error_handler

logging.basicConfig(
    level=logging.DEBUG if settings.is_development else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    yield
    # Shutdown
    await notifier.close()
    await enricher.close()
    await close_redis()


app = FastAPI(
    title="Greenflag API",
    description="Dating backend: matching, likes, messaging and credits",
    version="0.1.0",
    lifespan=lifespan,
)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error rendering
app.add_exception_handler(AppError, app_error_handler)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed payloads are business-rule rejections (400), not 422."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})},
    )


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(auth.router)  # Already has /auth prefix
app.include_router(profile.router)
app.include_router(matches.router)
app.include_router(likes.router)
app.include_router(messages.router)
app.include_router(privacy.router)
app.include_router(reports.router)
app.include_router(wallet.router)
app.include_router(admin.router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"status": "ok", "service": "greenflag"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
