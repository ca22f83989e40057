"""leads and call records

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("business_name", sa.Text(), nullable=False),
        sa.Column("contact_name", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("product_category", sa.Text(), nullable=False),
        sa.Column("brand_name", sa.Text(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_leads_phone_number", "leads", ["phone_number"])

    op.create_table(
        "call_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("lead_id", sa.String(length=36), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("business_name", sa.Text(), nullable=False),
        sa.Column("product_category", sa.Text(), nullable=False),
        sa.Column("brand_name", sa.Text(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("transcript", sa.JSON(), nullable=False),
        sa.Column("twilio_sid", sa.String(length=64), nullable=True),
        sa.Column("twilio_status", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_call_records_lead_id", "call_records", ["lead_id"])
    op.create_index("ix_call_records_phone_number", "call_records", ["phone_number"])
    op.create_index("ix_call_records_twilio_sid", "call_records", ["twilio_sid"])


def downgrade() -> None:
    op.drop_index("ix_call_records_twilio_sid", table_name="call_records")
    op.drop_index("ix_call_records_phone_number", table_name="call_records")
    op.drop_index("ix_call_records_lead_id", table_name="call_records")
    op.drop_table("call_records")
    op.drop_index("ix_leads_phone_number", table_name="leads")
    op.drop_table("leads")
