"""
main.py — LoadHunter API

Internal HTTP surface over the ingestion pipeline: on-demand geocoding,
ingestion triggers, re-matching and reparsing. Process-wide collaborators
(rate limiters, geocode cache, background queue, ingestion service) are
built once in the lifespan and kept on app.state.

Run: uvicorn loadhunter.main:app
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .connectors.mapbox import MapboxGeocoder
from .database import SessionLocal
from .exceptions import LoadHunterError, RateLimitExceeded
from .logging_config import setup_logging
from .rate_limit import RateLimiter
from .routers import geocode, ingestion
from .schemas.errors import ErrorResponse
from .services.background import BackgroundQueue
from .services.geocode_cache import GeocodeCache
from .services.load_ingestion import LoadIngestionService

VERSION = "0.1.0"


def build_state(app: FastAPI, session_factory=SessionLocal) -> None:
    background = BackgroundQueue()
    cache = GeocodeCache(
        MapboxGeocoder(),
        RateLimiter(namespace="geocode"),
        background=background,
        session_factory=session_factory,
    )
    app.state.background = background
    app.state.api_limiter = RateLimiter(namespace="geocode_api")
    app.state.geocode_cache = cache
    app.state.ingestion_service = LoadIngestionService(session_factory, cache, background=background)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    build_state(app)
    app.state.background.start()

    poller = None
    if settings.scheduler_enabled:
        from .scheduler import run_forever

        poller = asyncio.create_task(run_forever(app.state.ingestion_service, SessionLocal))
    logger.info(f"LoadHunter {VERSION} started scheduler={settings.scheduler_enabled}")
    yield
    if poller:
        poller.cancel()
    await app.state.background.stop()


app = FastAPI(title="LoadHunter", version=VERSION, lifespan=lifespan)
app.include_router(geocode.router)
app.include_router(ingestion.router)


# ── Error handlers ──────────────────────────────────────────────────────


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = ErrorResponse(error=str(exc.detail), status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = ErrorResponse(
        error="Validation error",
        status_code=422,
        detail=[{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()],
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    body = ErrorResponse(error="Rate limit exceeded", status_code=429, reason=exc.key)
    return JSONResponse(status_code=429, content=body.model_dump())


@app.exception_handler(LoadHunterError)
async def pipeline_error_handler(request: Request, exc: LoadHunterError):
    logger.error(f"request_failed path={request.url.path} error={exc}")
    body = ErrorResponse(error=str(exc), status_code=500, reason=type(exc).__name__)
    return JSONResponse(status_code=500, content=body.model_dump())


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
