"""create developer api tables

Revision ID: 0001
Revises:
Create Date: 2026-03-02

  - api_keys                  (hashed credentials, one-way revocation)
  - api_key_daily_usage       (durable rollup of Redis counters)
  - external_user_identities  (hashed external id → anon_id, per key)
  - reviews                   (externally submitted reviews)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. api_keys ─────────────────────────────────────────
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("key_prefix", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("rate_limit_rpm", sa.Integer(), server_default="60", nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key_hash"),
    )
    op.create_index("ix_api_keys_owner_id", "api_keys", ["owner_id"])

    # ── 2. api_key_daily_usage ──────────────────────────────
    op.create_table(
        "api_key_daily_usage",
        sa.Column("key_id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("key_id", "date"),
        sa.ForeignKeyConstraint(["key_id"], ["api_keys.id"]),
    )

    # ── 3. external_user_identities ─────────────────────────
    op.create_table(
        "external_user_identities",
        sa.Column("key_id", sa.Uuid(), nullable=False),
        sa.Column("external_user_hash", sa.String(64), nullable=False),
        sa.Column("anon_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("key_id", "external_user_hash"),
        sa.ForeignKeyConstraint(["key_id"], ["api_keys.id"]),
        sa.UniqueConstraint("anon_id"),
    )

    # ── 4. reviews ──────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("anon_id", sa.Uuid(), nullable=False),
        sa.Column("source_key_id", sa.Uuid(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("recommend", sa.Boolean(), nullable=True),
        sa.Column("value_for_money", sa.Boolean(), nullable=True),
        sa.Column("works_with_milk", sa.Boolean(), nullable=True),
        sa.Column("brew_method", sa.String(20), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_key_id"], ["api_keys.id"]),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_reviews_rating_range",
        ),
        sa.CheckConstraint(
            "entity_type IN ('coffee', 'roaster')",
            name="ck_reviews_entity_type_valid",
        ),
    )
    op.create_index("ix_reviews_entity", "reviews", ["entity_type", "entity_id"])
    op.create_index("ix_reviews_anon_id", "reviews", ["anon_id"])


def downgrade() -> None:
    op.drop_index("ix_reviews_anon_id", table_name="reviews")
    op.drop_index("ix_reviews_entity", table_name="reviews")
    op.drop_table("reviews")
    op.drop_table("external_user_identities")
    op.drop_table("api_key_daily_usage")
    op.drop_index("ix_api_keys_owner_id", table_name="api_keys")
    op.drop_table("api_keys")
