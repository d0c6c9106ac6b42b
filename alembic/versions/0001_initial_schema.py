"""initial raffle indexer schema

Revision ID: 0001
Revises:
Create Date: 2026-01-02 00:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

RAFFLE_STATUSES = ("ACTIVE", "CLOSED", "RANDOM_REQUESTED", "RANDOM_FULFILLED", "FINALIZED", "REFUNDING")
UINT256 = sa.Numeric(78, 0)


def _log_identity():
    return [
        sa.Column("tx_hash", sa.String(66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "indexer_state",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("last_processed_block", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.execute("INSERT INTO indexer_state (id, last_processed_block) VALUES (1, 0) ON CONFLICT (id) DO NOTHING")

    op.create_table(
        "raffles",
        sa.Column("raffle_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("raffle_address", sa.String(42), nullable=False),
        sa.Column("creator", sa.String(42), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("ticket_price", UINT256, nullable=False),
        sa.Column("max_tickets", sa.BigInteger(), nullable=False),
        sa.Column("fee_bps", sa.BigInteger(), nullable=False),
        sa.Column("fee_recipient", sa.String(42), nullable=False),
        sa.Column("created_tx", sa.String(66), nullable=True),
        sa.Column("created_block", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.Enum(*RAFFLE_STATUSES, name="raffle_status"), nullable=False),
        sa.Column("total_tickets", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("pot", UINT256, nullable=False, server_default="0"),
        sa.Column("request_id", sa.String(80), nullable=True),
        sa.Column("request_tx", sa.String(66), nullable=True),
        sa.Column("randomness", sa.String(80), nullable=True),
        sa.Column("randomness_tx", sa.String(66), nullable=True),
        sa.Column("randomness_total_tickets", sa.BigInteger(), nullable=True),
        sa.Column("winning_index", sa.BigInteger(), nullable=True),
        sa.Column("winner", sa.String(42), nullable=True),
        sa.Column("finalized_tx", sa.String(66), nullable=True),
        sa.Column("provider_request_id", sa.String(80), nullable=True),
        sa.Column("provider_request_tx", sa.String(66), nullable=True),
        sa.Column("provider_fulfill_tx", sa.String(66), nullable=True),
        sa.Column("proof_data", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_raffles_raffle_address", "raffles", ["raffle_address"], unique=True)
    op.create_index("ix_raffles_creator", "raffles", ["creator"])
    op.create_index("ix_raffles_status", "raffles", ["status"])
    op.create_index("idx_raffles_status_id", "raffles", ["status", "raffle_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("raffle_id", sa.BigInteger(), sa.ForeignKey("raffles.raffle_id"), nullable=False),
        sa.Column("buyer", sa.String(42), nullable=False),
        sa.Column("start_index", sa.BigInteger(), nullable=False),
        sa.Column("end_index", sa.BigInteger(), nullable=False),
        sa.Column("count", sa.BigInteger(), nullable=False),
        sa.Column("amount", UINT256, nullable=False),
        sa.Column("out_of_order", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_log_identity(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tx_hash", "log_index", name="uq_purchases_log"),
    )
    op.create_index("ix_purchases_raffle_id", "purchases", ["raffle_id"])
    op.create_index("ix_purchases_buyer", "purchases", ["buyer"])
    op.create_index("ix_purchases_block_number", "purchases", ["block_number"])
    op.create_index("idx_purchases_range", "purchases", ["raffle_id", "start_index", "end_index"])

    op.create_table(
        "refunds",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("raffle_id", sa.BigInteger(), sa.ForeignKey("raffles.raffle_id"), nullable=False),
        sa.Column("buyer", sa.String(42), nullable=False),
        sa.Column("ticket_count", sa.BigInteger(), nullable=True),
        sa.Column("amount", UINT256, nullable=False),
        *_log_identity(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tx_hash", "log_index", name="uq_refunds_log"),
    )
    op.create_index("ix_refunds_raffle_id", "refunds", ["raffle_id"])
    op.create_index("ix_refunds_buyer", "refunds", ["buyer"])

    op.create_table(
        "randomness_requests",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.String(80), nullable=False),
        sa.Column("raffle_id", sa.BigInteger(), nullable=True),
        sa.Column("raffle_address", sa.String(42), nullable=True),
        sa.Column("provider_address", sa.String(42), nullable=False),
        *_log_identity(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tx_hash", "log_index", name="uq_randomness_requests_log"),
    )
    op.create_index("ix_randomness_requests_request_id", "randomness_requests", ["request_id"])
    op.create_index("ix_randomness_requests_raffle_id", "randomness_requests", ["raffle_id"])

    op.create_table(
        "randomness_fulfillments",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.String(80), nullable=False),
        sa.Column("raffle_address", sa.String(42), nullable=True),
        sa.Column("provider_address", sa.String(42), nullable=False),
        sa.Column("randomness", sa.String(80), nullable=False),
        sa.Column("proof_data", sa.Text(), nullable=True),
        *_log_identity(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tx_hash", "log_index", name="uq_randomness_fulfillments_log"),
    )
    op.create_index("ix_randomness_fulfillments_request_id", "randomness_fulfillments", ["request_id"])
    op.create_index("ix_randomness_fulfillments_raffle_address", "randomness_fulfillments", ["raffle_address"])

    op.create_table(
        "events_raw",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("event_name", sa.String(64), nullable=False),
        sa.Column("topic0", sa.String(66), nullable=False),
        sa.Column("topics", postgresql.JSONB(), nullable=False),
        sa.Column("data", sa.Text(), nullable=False),
        *_log_identity(),
        sa.Column("ingested_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tx_hash", "log_index", name="uq_events_raw_log"),
    )
    op.create_index("ix_events_raw_address", "events_raw", ["address"])
    op.create_index("ix_events_raw_event_name", "events_raw", ["event_name"])
    op.create_index("idx_events_raw_block", "events_raw", ["block_number", "log_index"])


def downgrade():
    op.drop_table("events_raw")
    op.drop_table("randomness_fulfillments")
    op.drop_table("randomness_requests")
    op.drop_table("refunds")
    op.drop_table("purchases")
    op.drop_table("raffles")
    op.drop_table("indexer_state")
    sa.Enum(name="raffle_status").drop(op.get_bind(), checkfirst=True)
