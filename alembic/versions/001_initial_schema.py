"""Initial schema — bookings, crypto_escrows, blockchain_transactions, revenue_settings,
notifications, rate_limit_hits.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("buyer_id", sa.String(64), nullable=False),
        sa.Column("facility_owner_id", sa.String(64), nullable=True),
        sa.Column("slot_id", sa.String(64), nullable=False),
        sa.Column("base_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("fee_breakdown", sa.JSON, nullable=False),
        sa.Column("vertical", sa.String(40), nullable=False),
        sa.Column("facility_type", sa.String(40), nullable=False),
        sa.Column("settlement_token", sa.String(16), nullable=False, server_default="ETH"),
        sa.Column("is_priority", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("requires_insurance", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("requires_tokenization", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("requires_audit", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bookings_buyer_id", "bookings", ["buyer_id"])

    op.create_table(
        "crypto_escrows",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("buyer_address", sa.String(42), nullable=False),
        sa.Column("facility_address", sa.String(42), nullable=False),
        sa.Column("amount", sa.Numeric(36, 18), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("network", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="created"),
        sa.Column("funding_tx_hash", sa.String(66), nullable=True),
        sa.Column("release_tx_hash", sa.String(66), nullable=True),
        sa.Column("dispute_winner", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("booking_id", name="uq_crypto_escrows_booking_id"),
        sa.UniqueConstraint("funding_tx_hash", name="uq_crypto_escrows_funding_tx_hash"),
    )

    op.create_table(
        "blockchain_transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("tx_hash", sa.String(66), nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("block_number", sa.BigInteger, nullable=True),
        sa.Column("gas_used", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_blockchain_transactions_booking_id", "blockchain_transactions", ["booking_id"],
    )

    op.create_table(
        "revenue_settings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("fee_rates", sa.JSON, nullable=False),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_revenue_settings_created_at", "revenue_settings", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("urgent", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("read", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "rate_limit_hits",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("client_key", sa.String(128), nullable=False),
        sa.Column("hit_at", sa.Float, nullable=False),
    )
    op.create_index("ix_rate_limit_hits_client_key", "rate_limit_hits", ["client_key"])
    op.create_index("ix_rate_limit_hits_hit_at", "rate_limit_hits", ["hit_at"])


def downgrade() -> None:
    op.drop_table("rate_limit_hits")
    op.drop_table("notifications")
    op.drop_table("revenue_settings")
    op.drop_table("blockchain_transactions")
    op.drop_table("crypto_escrows")
    op.drop_table("bookings")
