"""
routers/ingestion.py — Operator triggers for the ingestion pipeline

Business Rules:
- POST /api/ingestion/run runs one batch for a mailbox and returns its
  summary; a tenant resolution failure is a 200 with aborted=true
- Matching and rematching are idempotent; repeated calls create nothing new
- Reparse replaces parsed fields from the stored body, then re-matches

Called by: main.py (router mount)
Depends on: services/load_ingestion.py, services/hunt_matching.py
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_ingestion_service, require_internal_key
from ..exceptions import ShipmentNotFound
from ..models import LoadHuntMatch, ShipmentRecord
from ..schemas.api import (
    IngestionRunRequest,
    MatchResponse,
    RematchRequest,
    RematchResponse,
    ReparseResponse,
    ShipmentMatchesResponse,
)
from ..schemas.shipment import IngestionRunSummary
from ..services.hunt_matching import match_shipment, rematch_recent

router = APIRouter(prefix="/api", tags=["ingestion"], dependencies=[Depends(require_internal_key)])


@router.post("/ingestion/run", response_model=IngestionRunSummary)
async def run_ingestion(body: IngestionRunRequest, service=Depends(get_ingestion_service)):
    summary = await service.run_batch(body.mailbox, max_messages=body.max_messages)
    logger.info(f"ingestion_triggered mailbox={summary.mailbox} aborted={summary.aborted}")
    return summary


@router.post("/shipments/{shipment_id}/match", response_model=ShipmentMatchesResponse)
async def match_one(shipment_id: int, db: Session = Depends(get_db)):
    shipment = db.get(ShipmentRecord, shipment_id)
    if not shipment:
        raise HTTPException(404, "Shipment not found")
    created = match_shipment(db, shipment)
    matches = (
        db.query(LoadHuntMatch)
        .filter(LoadHuntMatch.shipment_id == shipment_id)
        .order_by(LoadHuntMatch.distance_miles)
        .all()
    )
    return ShipmentMatchesResponse(
        shipment_id=shipment_id,
        created=len(created),
        matches=[MatchResponse.model_validate(m) for m in matches],
    )


@router.post("/shipments/{shipment_id}/reparse", response_model=ReparseResponse)
async def reparse(shipment_id: int, service=Depends(get_ingestion_service)):
    try:
        return await service.reparse_shipment(shipment_id)
    except ShipmentNotFound:
        raise HTTPException(404, "Shipment not found")


@router.post("/hunts/rematch", response_model=RematchResponse)
async def rematch(body: RematchRequest, db: Session = Depends(get_db)):
    since = datetime.now(timezone.utc) - timedelta(hours=body.hours)
    checked, created = rematch_recent(db, body.tenant_id, since)
    return RematchResponse(tenant_id=body.tenant_id, shipments_checked=checked, matches_created=created)
