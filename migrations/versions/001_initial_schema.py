"""Initial schema: shipments, job applications and the lifecycle audit trail.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


SHIPMENT_STATUSES = (
    "draft",
    "pending",
    "assigned",
    "accepted",
    "picked_up",
    "in_transit",
    "delivered",
    "completed",
    "cancelled",
    "failed",
    "expired",
)


def _status(*values: str, name: str) -> sa.Enum:
    # Stored as VARCHAR + CHECK, matching the ORM's non-native enums
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade() -> None:
    # ── shipments ─────────────────────────────────────────────────────
    op.create_table(
        "shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("client_id", sa.String(36), nullable=False),
        sa.Column("driver_id", sa.String(36), nullable=True),
        sa.Column(
            "status",
            _status(*SHIPMENT_STATUSES, name="shipment_status"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("pickup_address", sa.Text, nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("pickup_notes", sa.Text, nullable=True),
        sa.Column("delivery_address", sa.Text, nullable=False),
        sa.Column("delivery_lat", sa.Float, nullable=True),
        sa.Column("delivery_lng", sa.Float, nullable=True),
        sa.Column("delivery_notes", sa.Text, nullable=True),
        sa.Column("estimated_price_cents", sa.Integer, nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column(
            "payment_status",
            _status("unpaid", "upfront_paid", "failed", "paid", name="payment_status"),
            nullable=False,
            server_default="unpaid",
        ),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("payment_failure_reason", sa.Text, nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_shipments_status", "shipments", ["status"])
    op.create_index("idx_shipments_client", "shipments", ["client_id"])
    op.create_index("idx_shipments_driver", "shipments", ["driver_id"])

    # ── job_applications ──────────────────────────────────────────────
    op.create_table(
        "job_applications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shipment_id",
            sa.String(36),
            sa.ForeignKey("shipments.id"),
            nullable=False,
        ),
        sa.Column("driver_id", sa.String(36), nullable=False),
        sa.Column(
            "status",
            _status(
                "pending", "accepted", "rejected", "cancelled",
                name="application_status",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column(
            "applied_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_applications_driver", "job_applications", ["driver_id"])
    op.create_index("idx_applications_shipment", "job_applications", ["shipment_id"])
    # One active application per driver per shipment
    op.create_index(
        "uq_applications_active",
        "job_applications",
        ["shipment_id", "driver_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'accepted')"),
    )
    # One winner per shipment
    op.create_index(
        "uq_applications_accepted",
        "job_applications",
        ["shipment_id"],
        unique=True,
        postgresql_where=sa.text("status = 'accepted'"),
    )

    # ── shipment_events ───────────────────────────────────────────────
    op.create_table(
        "shipment_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "shipment_id",
            sa.String(36),
            sa.ForeignKey("shipments.id"),
            nullable=False,
        ),
        sa.Column("event", sa.String(20), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_shipment_events_shipment", "shipment_events", ["shipment_id"]
    )


def downgrade() -> None:
    op.drop_table("shipment_events")
    op.drop_table("job_applications")
    op.drop_table("shipments")
