"""
routers/geocode.py — On-demand "CITY, STATE" geocoding

Business Rules:
- Per client IP rate limit (429 when exceeded)
- Served through the same cache as the pipeline, so a miss here is paid
  for once and then shared
- 404 when the provider has no result or the daily budget is exhausted

Called by: main.py (router mount)
Depends on: services/geocode_cache.py, rate_limit.py
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_geocode_cache, get_geocode_limiter, require_internal_key
from ..schemas.api import GeocodeRequest, GeocodeResponse

router = APIRouter(prefix="/api", tags=["geocode"], dependencies=[Depends(require_internal_key)])


@router.post("/geocode", response_model=GeocodeResponse)
async def geocode(
    body: GeocodeRequest,
    request: Request,
    db: Session = Depends(get_db),
    cache=Depends(get_geocode_cache),
    limiter=Depends(get_geocode_limiter),
):
    client_ip = request.client.host if request.client else "unknown"
    if not limiter.hit(client_ip):
        raise HTTPException(429, "Rate limit exceeded")

    result = await cache.lookup(db, body.city, body.state, caller=f"api:{client_ip}")
    if result is None:
        raise HTTPException(404, "Location not found")
    return GeocodeResponse(
        location_key=result.location_key,
        latitude=result.latitude,
        longitude=result.longitude,
        cached=result.cached,
    )
