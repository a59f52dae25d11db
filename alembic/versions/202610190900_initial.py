"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=320), unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "payer_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "recipient_id",
            sa.String(length=64),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "is_payment", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("receipt_url", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "payer_id <> recipient_id", name="ck_transactions_distinct_parties"
        ),
    )
    op.create_index(
        "ix_transactions_payer_created", "transactions", ["payer_id", "created_at"]
    )
    op.create_index(
        "ix_transactions_recipient_created",
        "transactions",
        ["recipient_id", "created_at"],
    )


def downgrade():
    op.drop_index("ix_transactions_recipient_created", table_name="transactions")
    op.drop_index("ix_transactions_payer_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("users")
