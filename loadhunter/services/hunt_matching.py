"""
services/hunt_matching.py — Match a shipment against the tenant's hunt plans

Business Rules:
- Requires a tenant and pickup coordinates; otherwise nothing matches
- Regional pre-filter: if no enabled hunt center of the tenant lies within
  the regional radius (500 mi) of the pickup, stop before any per-hunt work
- Per hunt, skip when:
    shipment id <= floor_shipment_id (hunt created after this load)
    distance > pickup radius (default 200 mi)
    accepted sizes are set and none matches the vehicle type
    max payload is set and weight > 0 exceeds it
    the (shipment, hunt) pair already exists
- Insert with the rounded distance; a unique-constraint race is ignored
- Vehicle matching is permissive: containment either way, a shared
  cargo/sprinter/straight token, and loads with no vehicle type pass

Called by: services/load_ingestion.py (background), routers/ingestion.py
Depends on: models (HuntPlan, LoadHuntMatch, ShipmentRecord), utils/geo.py
"""

import logging
import re
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import HuntPlan, LoadHuntMatch, ShipmentRecord
from ..utils.geo import haversine_miles

log = logging.getLogger("loadhunter.hunt_matching")

DEFAULT_PICKUP_RADIUS = 200

# Class tokens: a size and a load that both contain one are the same class
VEHICLE_CLASS_TOKENS = ("cargo", "sprinter", "straight")


def _norm(value) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value or "").lower())


def accepted_sizes(raw) -> list[str]:
    """Hunt vehicle_sizes as a list. Legacy rows store a bare string."""
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw] if raw.strip() else []
    return [s for s in raw if s]


def vehicle_matches(vehicle_type: str | None, sizes) -> bool:
    sizes = accepted_sizes(sizes)
    if not sizes:
        return True
    load = _norm(vehicle_type)
    if not load:
        # Untyped loads stay eligible
        return True
    for size in sizes:
        want = _norm(size)
        if not want:
            continue
        if want == load or want in load or load in want:
            return True
        if any(tok in want and tok in load for tok in VEHICLE_CLASS_TOKENS):
            return True
    return False


def regional_candidates(db: Session, shipment: ShipmentRecord) -> list[tuple[HuntPlan, float]]:
    """Enabled hunts of the tenant with a center, paired with their distance to the pickup.

    Empty when none lies within the regional radius.
    """
    hunts = (
        db.query(HuntPlan)
        .filter(
            HuntPlan.tenant_id == shipment.tenant_id,
            HuntPlan.enabled.is_(True),
            HuntPlan.center_lat.isnot(None),
            HuntPlan.center_lng.isnot(None),
        )
        .all()
    )
    scored = [
        (h, haversine_miles(shipment.pickup_lat, shipment.pickup_lng, h.center_lat, h.center_lng))
        for h in hunts
    ]
    if not any(d <= settings.regional_radius_miles for _, d in scored):
        return []
    return scored


def _pair_exists(db: Session, shipment_id: int, hunt_id: int) -> bool:
    return (
        db.query(LoadHuntMatch.id)
        .filter(LoadHuntMatch.shipment_id == shipment_id, LoadHuntMatch.hunt_plan_id == hunt_id)
        .first()
        is not None
    )


def _evaluate_hunt(db: Session, shipment: ShipmentRecord, hunt: HuntPlan,
                   distance: float) -> LoadHuntMatch | None:
    if hunt.floor_shipment_id is not None and shipment.id <= hunt.floor_shipment_id:
        return None
    radius = hunt.pickup_radius_miles or settings.default_pickup_radius_miles or DEFAULT_PICKUP_RADIUS
    if distance > radius:
        return None
    if not vehicle_matches(shipment.vehicle_type, hunt.vehicle_sizes):
        return None
    if hunt.max_payload_lbs and shipment.weight and shipment.weight > 0:
        if shipment.weight > hunt.max_payload_lbs:
            return None
    if _pair_exists(db, shipment.id, hunt.id):
        return None

    match = LoadHuntMatch(
        shipment_id=shipment.id,
        hunt_plan_id=hunt.id,
        tenant_id=shipment.tenant_id,
        vehicle_id=hunt.vehicle_id,
        distance_miles=round(distance),
        is_active=True,
        match_status="active",
    )
    db.add(match)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        log.debug(f"match_exists shipment={shipment.id} hunt={hunt.id}")
        return None
    return match


def match_shipment(db: Session, shipment: ShipmentRecord) -> list[LoadHuntMatch]:
    """Create new matches for shipment. Idempotent: existing pairs are left alone."""
    if not shipment.tenant_id:
        log.info(f"match_skipped reason=no_tenant shipment={shipment.id}")
        return []
    if not shipment.has_pickup_coordinates:
        log.info(f"match_skipped reason=no_coordinates shipment={shipment.id}")
        return []

    candidates = regional_candidates(db, shipment)
    if not candidates:
        log.debug(f"match_skipped reason=outside_region shipment={shipment.id}")
        return []

    created = []
    for hunt, distance in candidates:
        match = _evaluate_hunt(db, shipment, hunt, distance)
        if match is not None:
            created.append(match)
    if created:
        log.info(f"matches_created shipment={shipment.id} tenant={shipment.tenant_id} count={len(created)}")
    return created


def match_shipment_by_id(session_factory, shipment_id: int) -> int:
    """Background entry point: own session, returns the number of new matches."""
    db = session_factory()
    try:
        shipment = db.get(ShipmentRecord, shipment_id)
        if shipment is None:
            return 0
        return len(match_shipment(db, shipment))
    finally:
        db.close()


def rematch_recent(db: Session, tenant_id: str, since: datetime) -> tuple[int, int]:
    """Re-run matching over the tenant's recent new shipments.

    Returns (shipments_checked, matches_created).
    """
    shipments = (
        db.query(ShipmentRecord)
        .filter(
            ShipmentRecord.tenant_id == tenant_id,
            ShipmentRecord.status == "new",
            ShipmentRecord.created_at >= since,
        )
        .order_by(ShipmentRecord.id)
        .all()
    )
    created = 0
    for shipment in shipments:
        created += len(match_shipment(db, shipment))
    log.info(f"rematch_done tenant={tenant_id} checked={len(shipments)} created={created}")
    return len(shipments), created
