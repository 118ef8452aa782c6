"""baseline schema

Revision ID: 0001_baseline_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

from app.store.schema import metadata


revision = "0001_baseline_schema"
down_revision = None
branch_labels = None
depends_on = None

# creation order (foreign keys)
TABLES = (
    "users",
    "talent_profiles",
    "bookings",
    "transactions",
    "payouts",
    "disputes",
    "kyc_submissions",
    "kyc_documents",
    "referrals",
    "notifications",
    "audit_log",
)


def upgrade() -> None:
    bind = op.get_bind()
    metadata.create_all(bind=bind, tables=[metadata.tables[name] for name in TABLES], checkfirst=True)


def downgrade() -> None:
    bind = op.get_bind()
    metadata.drop_all(bind=bind, tables=[metadata.tables[name] for name in reversed(TABLES)], checkfirst=True)
