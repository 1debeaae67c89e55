"""
conftest.py — Shared test fixtures for LoadHunter

Provides an in-memory SQLite database, a FastAPI TestClient with the
process-wide collaborators overridden, and factory fixtures for the core
models (MailboxConnection, TenantIntegration, ShipmentRecord, HuntPlan).

Business Rules:
- All tests run against an isolated in-memory DB
- Each test function gets freshly created tables
- Nothing here talks to Gmail or Mapbox; clients are mocked per test

Called by: all test files via pytest autodiscovery
Depends on: loadhunter.models (Base), loadhunter.database (get_db)
"""

import os
os.environ["TESTING"] = "1"  # Must be set before importing loadhunter modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from loadhunter.connectors.mapbox import GeocodeFeature
from loadhunter.models import (
    Base, HuntPlan, MailboxConnection, ShipmentRecord, TenantIntegration,
)
from loadhunter.rate_limit import RateLimiter
from loadhunter.services.geocode_cache import GeocodeCache

TENANT_A = "11111111-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TENANT_B = "22222222-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
MAILBOX = "loads@dispatch.example.com"

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory():
    return TestSessionLocal


@pytest.fixture()
def mailbox_connection(db_session: Session) -> MailboxConnection:
    """A connected mailbox mapped to TENANT_A, with a still-valid token."""
    conn = MailboxConnection(
        mailbox=MAILBOX,
        tenant_id=TENANT_A,
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        token_expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
    )
    db_session.add(conn)
    db_session.commit()
    db_session.refresh(conn)
    return conn


@pytest.fixture()
def make_integration(db_session: Session):
    def _make(tenant_id: str, settings: dict | None = None, enabled: bool = True) -> TenantIntegration:
        integ = TenantIntegration(
            tenant_id=tenant_id, provider="gmail", is_enabled=enabled, settings=settings or {},
        )
        db_session.add(integ)
        db_session.commit()
        db_session.refresh(integ)
        return integ
    return _make


@pytest.fixture()
def make_shipment(db_session: Session):
    counter = {"n": 0}

    def _make(**overrides) -> ShipmentRecord:
        counter["n"] += 1
        values = {
            "message_id": f"msg-{counter['n']}",
            "tenant_id": TENANT_A,
            "dialect": "sylectus",
            "status": "new",
            "vehicle_type": "CARGO VAN",
            "origin_city": "Chicago",
            "origin_state": "IL",
            "pickup_lat": 41.8781,
            "pickup_lng": -87.6298,
            "weight": 1000.0,
        }
        values.update(overrides)
        shipment = ShipmentRecord(**values)
        db_session.add(shipment)
        db_session.commit()
        db_session.refresh(shipment)
        return shipment
    return _make


@pytest.fixture()
def make_hunt(db_session: Session):
    def _make(**overrides) -> HuntPlan:
        values = {
            "tenant_id": TENANT_A,
            "vehicle_id": "truck-1",
            "name": "Chicagoland",
            "enabled": True,
            "center_lat": 41.85,
            "center_lng": -87.65,
            "pickup_radius_miles": 200,
            "vehicle_sizes": ["CARGO VAN"],
        }
        values.update(overrides)
        hunt = HuntPlan(**values)
        db_session.add(hunt)
        db_session.commit()
        db_session.refresh(hunt)
        return hunt
    return _make


@pytest.fixture()
def geocoder():
    """Mapbox stand-in: every forward() call returns one Chicago feature."""
    geo = MagicMock()
    geo.configured = True
    geo.forward = AsyncMock(return_value=[
        GeocodeFeature(latitude=41.8781, longitude=-87.6298, city="Chicago", state="IL"),
    ])
    return geo


@pytest.fixture()
def geocode_cache(geocoder) -> GeocodeCache:
    return GeocodeCache(geocoder, RateLimiter("1000/minute"), daily_budget=100)


@pytest.fixture()
def client(db_session: Session, geocode_cache: GeocodeCache) -> TestClient:
    """TestClient with get_db and app.state collaborators overridden."""
    from loadhunter.database import get_db
    from loadhunter.dependencies import get_geocode_cache, get_geocode_limiter
    from loadhunter.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_geocode_cache] = lambda: geocode_cache
    api_limiter = RateLimiter("5/minute", namespace="test_api")
    app.dependency_overrides[get_geocode_limiter] = lambda: api_limiter

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
