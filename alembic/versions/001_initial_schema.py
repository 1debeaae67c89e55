"""initial schema - tenancy, shipments, geocode cache, hunting, crm

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.DateTime(), **kw)


def upgrade() -> None:
    op.create_table(
        "mailbox_connections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mailbox", sa.String(255), nullable=False, unique=True),
        sa.Column("tenant_id", sa.String(64)),
        sa.Column("access_token", sa.Text()),
        sa.Column("refresh_token", sa.Text()),
        _ts("token_expires_at"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("last_polled_at"),
        sa.Column("last_error", sa.Text()),
        _ts("created_at"),
    )

    op.create_table(
        "tenant_integrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("settings", sa.JSON()),
        _ts("created_at"),
    )
    op.create_index("ix_tenant_integrations_provider", "tenant_integrations", ["provider", "is_enabled"])
    op.create_index(
        "ix_tenant_integrations_tenant_provider", "tenant_integrations",
        ["tenant_id", "provider"], unique=True,
    )

    op.create_table(
        "parser_hints",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dialect", sa.String(50), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("context_before", sa.Text()),
        sa.Column("context_after", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )
    op.create_index("ix_parser_hints_dialect_active", "parser_hints", ["dialect", "is_active"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("mailbox", sa.String(255)),
        sa.Column("tenant_id", sa.String(64)),
        sa.Column("reason", sa.String(255)),
        sa.Column("details", sa.JSON()),
        _ts("created_at"),
    )
    op.create_index("ix_audit_logs_action_created", "audit_logs", ["action", "created_at"])

    op.create_table(
        "shipments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.String(255), nullable=False, unique=True),
        sa.Column("thread_id", sa.String(255)),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("dialect", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("sender_email", sa.String(255)),
        sa.Column("sender_name", sa.String(255)),
        sa.Column("subject", sa.Text()),
        sa.Column("body_text", sa.Text()),
        sa.Column("body_html", sa.Text()),
        _ts("received_at"),
        sa.Column("vehicle_type", sa.String(100)),
        sa.Column("order_number", sa.String(100)),
        sa.Column("order_number_secondary", sa.String(100)),
        sa.Column("origin_city", sa.String(150)),
        sa.Column("origin_state", sa.String(10)),
        sa.Column("origin_postal", sa.String(20)),
        sa.Column("destination_city", sa.String(150)),
        sa.Column("destination_state", sa.String(10)),
        sa.Column("destination_postal", sa.String(20)),
        sa.Column("stops", sa.JSON()),
        sa.Column("stop_count", sa.Integer()),
        sa.Column("has_multiple_stops", sa.Boolean()),
        sa.Column("pickup_date", sa.String(50)),
        sa.Column("pickup_time", sa.String(50)),
        sa.Column("delivery_date", sa.String(50)),
        sa.Column("delivery_time", sa.String(50)),
        sa.Column("loaded_miles", sa.Integer()),
        sa.Column("weight", sa.Float()),
        sa.Column("pieces", sa.Integer()),
        sa.Column("dimensions", sa.String(100)),
        sa.Column("posted_rate", sa.Float()),
        sa.Column("dock_level", sa.Boolean()),
        sa.Column("hazmat", sa.Boolean()),
        sa.Column("team_required", sa.Boolean()),
        sa.Column("stackable", sa.Boolean()),
        sa.Column("notes", sa.Text()),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("broker_company", sa.String(255)),
        sa.Column("broker_name", sa.String(255)),
        sa.Column("broker_email", sa.String(255)),
        sa.Column("broker_phone", sa.String(50)),
        sa.Column("broker_fax", sa.String(50)),
        sa.Column("mc_number", sa.String(20)),
        _ts("posted_at"),
        _ts("expires_at"),
        sa.Column("pickup_lat", sa.Float()),
        sa.Column("pickup_lng", sa.Float()),
        sa.Column("geocoding_status", sa.String(20)),
        sa.Column("geocoding_error", sa.String(50)),
        sa.Column("has_issues", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("issue_notes", sa.Text()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_shipments_tenant_created", "shipments", ["tenant_id", "created_at"])
    op.create_index("ix_shipments_tenant_status", "shipments", ["tenant_id", "status"])

    op.create_table(
        "geocode_cache",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_key", sa.String(255), nullable=False, unique=True),
        sa.Column("city", sa.String(150)),
        sa.Column("state", sa.String(10)),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("hit_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("month_created", sa.String(7), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_geocode_cache_created", "geocode_cache", ["created_at"])

    op.create_table(
        "hunt_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("vehicle_id", sa.String(64)),
        sa.Column("name", sa.String(255)),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("center_lat", sa.Float()),
        sa.Column("center_lng", sa.Float()),
        sa.Column("pickup_radius_miles", sa.Float()),
        sa.Column("vehicle_sizes", sa.JSON()),
        sa.Column("max_payload_lbs", sa.Float()),
        sa.Column("floor_shipment_id", sa.Integer()),
        _ts("created_at"),
    )
    op.create_index("ix_hunt_plans_tenant_enabled", "hunt_plans", ["tenant_id", "enabled"])

    op.create_table(
        "load_hunt_matches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shipment_id", sa.Integer(), sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("hunt_plan_id", sa.Integer(), sa.ForeignKey("hunt_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("vehicle_id", sa.String(64)),
        sa.Column("distance_miles", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("match_status", sa.String(20), nullable=False, server_default="active"),
        _ts("matched_at"),
    )
    op.create_index("ix_load_hunt_matches_pair", "load_hunt_matches", ["shipment_id", "hunt_plan_id"], unique=True)
    op.create_index("ix_load_hunt_matches_tenant_status", "load_hunt_matches", ["tenant_id", "match_status"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_key", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("mc_number", sa.String(20)),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_customers_tenant_name_key", "customers", ["tenant_id", "name_key"], unique=True)


def downgrade() -> None:
    """Drop all tables. DESTRUCTIVE — only for dev/test environments."""
    for table in (
        "customers", "load_hunt_matches", "hunt_plans", "geocode_cache", "shipments",
        "audit_logs", "parser_hints", "tenant_integrations", "mailbox_connections",
    ):
        op.drop_table(table)
