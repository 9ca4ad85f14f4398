"""Initial agt-20 ledger schema (tokens, agents, balances, operations, indexer_state)

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AMOUNT = sa.Numeric(precision=78, scale=0)


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticker", sa.String(length=32), nullable=False),
        sa.Column("max_supply", AMOUNT, nullable=False),
        sa.Column("mint_limit", AMOUNT, nullable=False),
        sa.Column("supply", AMOUNT, nullable=False, server_default="0"),
        sa.Column("holders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("operations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deployer", sa.String(), nullable=False),
        sa.Column("deploy_post_id", sa.String(), nullable=True),
        sa.Column("contract_address", sa.String(), nullable=True),
        sa.Column("deployed_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("tokens_pkey")),
        sa.CheckConstraint("supply >= 0", name="ck_tokens_supply_non_negative"),
        sa.CheckConstraint("supply <= max_supply", name="ck_tokens_supply_within_max"),
    )
    op.create_index("ix_tokens_ticker", "tokens", ["ticker"], unique=True)
    op.create_index("ix_tokens_deployer", "tokens", ["deployer"])

    op.create_table(
        "agents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("operations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_mint_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("agents_pkey")),
    )
    op.create_index("ix_agents_name", "agents", ["name"], unique=True)

    op.create_table(
        "balances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticker", sa.String(length=32), nullable=False),
        sa.Column("agent_name", sa.String(), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("balances_pkey")),
        sa.ForeignKeyConstraint(["ticker"], ["tokens.ticker"]),
        sa.ForeignKeyConstraint(["agent_name"], ["agents.name"]),
        sa.UniqueConstraint("ticker", "agent_name"),
        sa.CheckConstraint("amount >= 0", name="ck_balances_amount_non_negative"),
    )
    op.create_index("ix_balances_ticker", "balances", ["ticker"])
    op.create_index("ix_balances_agent_name", "balances", ["agent_name"])

    op.create_table(
        "operations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("post_id", sa.String(), nullable=False),
        sa.Column("post_url", sa.String(), nullable=False),
        sa.Column("operation", sa.String(), nullable=False),
        sa.Column("ticker", sa.String(length=32), nullable=True),
        sa.Column("from_agent", sa.String(), nullable=True),
        sa.Column("to_agent", sa.String(), nullable=True),
        sa.Column("amount", AMOUNT, nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("raw_payload", sa.String(), nullable=True),
        sa.Column("indexed_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("operations_pkey")),
    )
    op.create_index("ix_operations_post_id", "operations", ["post_id"], unique=True)
    op.create_index("ix_operations_ticker", "operations", ["ticker"])
    op.create_index("ix_operations_from_agent", "operations", ["from_agent"])
    op.create_index("ix_operations_to_agent", "operations", ["to_agent"])
    op.create_index("ix_operations_timestamp", "operations", ["timestamp"])
    op.create_index("ix_operations_is_valid", "operations", ["is_valid"])
    op.create_index("ix_operations_mint_quota", "operations", ["operation", "to_agent", "timestamp"])

    op.create_table(
        "indexer_state",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("last_post_id", sa.String(), nullable=True),
        sa.Column("last_post_at", sa.DateTime(), nullable=True),
        sa.Column("last_indexed", sa.DateTime(), nullable=True),
        sa.Column("lock_owner", sa.String(), nullable=True),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("indexer_state_pkey")),
    )


def downgrade() -> None:
    op.drop_table("indexer_state")
    op.drop_index("ix_operations_mint_quota", table_name="operations")
    op.drop_index("ix_operations_is_valid", table_name="operations")
    op.drop_index("ix_operations_timestamp", table_name="operations")
    op.drop_index("ix_operations_to_agent", table_name="operations")
    op.drop_index("ix_operations_from_agent", table_name="operations")
    op.drop_index("ix_operations_ticker", table_name="operations")
    op.drop_index("ix_operations_post_id", table_name="operations")
    op.drop_table("operations")
    op.drop_index("ix_balances_agent_name", table_name="balances")
    op.drop_index("ix_balances_ticker", table_name="balances")
    op.drop_table("balances")
    op.drop_index("ix_agents_name", table_name="agents")
    op.drop_table("agents")
    op.drop_index("ix_tokens_deployer", table_name="tokens")
    op.drop_index("ix_tokens_ticker", table_name="tokens")
    op.drop_table("tokens")
