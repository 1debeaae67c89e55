"""
test_hunt_matching.py — Tests for services/hunt_matching.py

Hunt centers default to downtown Chicago and shipments pick up in Chicago
(see conftest factories); each test moves one knob.

Called by: pytest
Depends on: loadhunter/services/hunt_matching.py
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from loadhunter.models import LoadHuntMatch
from loadhunter.services import hunt_matching
from loadhunter.services.hunt_matching import (
    accepted_sizes, match_shipment, rematch_recent, vehicle_matches,
)

TENANT_A = "11111111-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TENANT_B = "22222222-bbbb-4bbb-8bbb-bbbbbbbbbbbb"

# Milwaukee is ~80 mi from Chicago, Indianapolis ~165, Minneapolis ~355, Denver ~920
MILWAUKEE = (43.0389, -87.9065)
INDIANAPOLIS = (39.7684, -86.1581)
MINNEAPOLIS = (44.9778, -93.2650)
DENVER = (39.7392, -104.9903)


class TestVehicleMatching:
    @pytest.mark.parametrize("load,sizes", [
        ("CARGO VAN", ["Cargo Van"]),
        ("CARGO VAN", ["cargo"]),
        ("Sprinter Van", ["sprinter"]),
        ("SPRINTER-VAN", ["sprinter"]),
        ("LARGE STRAIGHT", ["straight"]),
        ("SMALL STRAIGHT", ["Large Straight"]),
        ("CARGO VAN", ["Small Cargo"]),
        ("VAN", "van"),
    ])
    def test_matches(self, load, sizes):
        assert vehicle_matches(load, sizes) is True

    @pytest.mark.parametrize("load,sizes", [
        ("FLATBED", ["Cargo Van"]),
        ("TRACTOR", ["sprinter", "straight"]),
        ("Sprinter Van", ["cargo"]),
        ("Straight Truck", ["sprinter"]),
        ("STRAIGHT", ["Box Truck"]),
    ])
    def test_rejects(self, load, sizes):
        assert vehicle_matches(load, sizes) is False

    def test_untyped_load_passes_sized_hunt(self):
        assert vehicle_matches(None, ["Cargo Van"]) is True
        assert vehicle_matches("", ["sprinter"]) is True

    def test_no_sizes_accepts_anything(self):
        assert vehicle_matches("FLATBED", []) is True
        assert vehicle_matches(None, None) is True

    def test_legacy_string_sizes(self):
        assert accepted_sizes("Cargo Van") == ["Cargo Van"]
        assert accepted_sizes("  ") == []
        assert accepted_sizes(["a", "", None, "b"]) == ["a", "b"]


class TestMatchShipment:
    def test_creates_match_with_rounded_distance(self, db_session, make_shipment, make_hunt):
        hunt = make_hunt(center_lat=MILWAUKEE[0], center_lng=MILWAUKEE[1])
        shipment = make_shipment()
        matches = match_shipment(db_session, shipment)
        assert len(matches) == 1
        m = matches[0]
        assert (m.shipment_id, m.hunt_plan_id) == (shipment.id, hunt.id)
        assert m.tenant_id == TENANT_A
        assert m.vehicle_id == "truck-1"
        assert m.match_status == "active"
        assert m.is_active is True
        assert isinstance(m.distance_miles, int)
        assert 75 <= m.distance_miles <= 90

    def test_idempotent(self, db_session, make_shipment, make_hunt):
        make_hunt()
        shipment = make_shipment()
        assert len(match_shipment(db_session, shipment)) == 1
        assert match_shipment(db_session, shipment) == []
        assert db_session.query(LoadHuntMatch).count() == 1

    def test_requires_coordinates(self, db_session, make_shipment, make_hunt):
        make_hunt()
        shipment = make_shipment(pickup_lat=None, pickup_lng=None)
        assert match_shipment(db_session, shipment) == []

    def test_outside_region_skips_per_hunt_evaluation(self, db_session, make_shipment, make_hunt):
        make_hunt()
        shipment = make_shipment(pickup_lat=DENVER[0], pickup_lng=DENVER[1])
        with patch.object(hunt_matching, "_evaluate_hunt") as evaluate:
            assert match_shipment(db_session, shipment) == []
        evaluate.assert_not_called()

    def test_regional_but_beyond_radius(self, db_session, make_shipment, make_hunt):
        make_hunt(center_lat=MINNEAPOLIS[0], center_lng=MINNEAPOLIS[1])
        assert match_shipment(db_session, make_shipment()) == []

    def test_wider_radius_reaches(self, db_session, make_shipment, make_hunt):
        make_hunt(center_lat=MINNEAPOLIS[0], center_lng=MINNEAPOLIS[1], pickup_radius_miles=400)
        assert len(match_shipment(db_session, make_shipment())) == 1

    def test_floor_cutoff(self, db_session, make_shipment, make_hunt):
        old = make_shipment()
        make_hunt(floor_shipment_id=old.id)
        assert match_shipment(db_session, old) == []
        newer = make_shipment()
        assert len(match_shipment(db_session, newer)) == 1

    def test_vehicle_mismatch(self, db_session, make_shipment, make_hunt):
        make_hunt(vehicle_sizes=["Flatbed"])
        assert match_shipment(db_session, make_shipment()) == []

    def test_untyped_load_still_matches(self, db_session, make_shipment, make_hunt):
        make_hunt(vehicle_sizes=["Cargo Van"])
        assert len(match_shipment(db_session, make_shipment(vehicle_type=None))) == 1

    def test_payload_limit(self, db_session, make_shipment, make_hunt):
        make_hunt(max_payload_lbs=3000)
        assert match_shipment(db_session, make_shipment(weight=3500.0)) == []
        assert len(match_shipment(db_session, make_shipment(weight=2500.0))) == 1
        assert len(match_shipment(db_session, make_shipment(weight=None))) == 1

    def test_other_tenant_and_disabled_hunts_ignored(self, db_session, make_shipment, make_hunt):
        make_hunt(tenant_id=TENANT_B)
        make_hunt(enabled=False)
        assert match_shipment(db_session, make_shipment()) == []

    def test_matches_several_hunts(self, db_session, make_shipment, make_hunt):
        make_hunt()
        make_hunt(center_lat=INDIANAPOLIS[0], center_lng=INDIANAPOLIS[1], vehicle_id="truck-2")
        make_hunt(center_lat=DENVER[0], center_lng=DENVER[1], vehicle_id="truck-3")
        matches = match_shipment(db_session, make_shipment())
        assert sorted(m.vehicle_id for m in matches) == ["truck-1", "truck-2"]


def test_rematch_recent_only_new_recent_tenant(db_session, make_shipment, make_hunt):
    make_shipment()
    make_shipment(status="skipped")
    make_shipment(tenant_id=TENANT_B)
    make_hunt()
    since = datetime.now(timezone.utc) - timedelta(hours=1)
    checked, created = rematch_recent(db_session, TENANT_A, since)
    assert (checked, created) == (1, 1)
    assert rematch_recent(db_session, TENANT_A, since) == (1, 0)


def test_match_shipment_by_id(db_session, session_factory, make_shipment, make_hunt):
    make_hunt()
    shipment = make_shipment()
    assert hunt_matching.match_shipment_by_id(session_factory, shipment.id) == 1
    assert hunt_matching.match_shipment_by_id(session_factory, 999999) == 0
