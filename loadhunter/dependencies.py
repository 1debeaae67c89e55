"""
dependencies.py — Shared FastAPI dependencies

Business Rules:
- require_internal_key checks X-Internal-Key only when INTERNAL_API_KEY is
  configured; the HTTP surface is internal and sits behind the platform's
  own auth
- Process-wide objects (geocode cache, ingestion service, limiter) live on
  app.state and are fetched from the request

Called by: routers/*
Depends on: config
"""

import hmac
import logging

from fastapi import HTTPException, Request

from .config import settings

log = logging.getLogger("loadhunter.dependencies")


def require_internal_key(request: Request) -> None:
    expected = settings.internal_api_key
    if not expected:
        return
    supplied = request.headers.get("x-internal-key") or ""
    if not hmac.compare_digest(supplied, expected):
        log.warning(f"internal_key_rejected path={request.url.path}")
        raise HTTPException(401, "Invalid internal key")


def get_geocode_cache(request: Request):
    return request.app.state.geocode_cache


def get_geocode_limiter(request: Request):
    return request.app.state.api_limiter


def get_ingestion_service(request: Request):
    return request.app.state.ingestion_service
