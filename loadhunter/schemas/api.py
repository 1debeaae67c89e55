"""
schemas/api.py — Request/response models for the internal HTTP surface

Called by: routers/geocode.py, routers/ingestion.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator


class GeocodeRequest(BaseModel):
    city: str
    state: str

    @field_validator("city", "state")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("city and state are required")
        return v


class GeocodeResponse(BaseModel):
    location_key: str
    latitude: float
    longitude: float
    cached: bool


class IngestionRunRequest(BaseModel):
    mailbox: str
    max_messages: int | None = None


class MatchResponse(BaseModel):
    id: int
    shipment_id: int
    hunt_plan_id: int
    vehicle_id: str | None = None
    distance_miles: int
    match_status: str
    matched_at: datetime | None = None

    model_config = {"from_attributes": True}


class ShipmentMatchesResponse(BaseModel):
    shipment_id: int
    created: int
    matches: list[MatchResponse]


class RematchRequest(BaseModel):
    tenant_id: str
    hours: int = 24


class RematchResponse(BaseModel):
    tenant_id: str
    shipments_checked: int
    matches_created: int


class ReparseResponse(BaseModel):
    shipment_id: int
    dialect: str
    populated_fields: list[str]
    geocoding_status: str | None = None
    matches_created: int
