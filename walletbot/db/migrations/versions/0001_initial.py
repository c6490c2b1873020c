# ruff: noqa
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "telegram_users",
        sa.Column("telegram_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=True),
        sa.Column("username", sa.String(length=64), nullable=True),
        sa.Column("link_code", sa.String(length=64), nullable=True),
        sa.Column("link_code_expires", sa.DateTime(), nullable=True),
        sa.Column("linked_at", sa.DateTime(), nullable=True),
        sa.Column("referral_code", sa.String(length=16), nullable=False),
        sa.Column(
            "referred_by",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_telegram_users_wallet_address", "telegram_users", ["wallet_address"], unique=False)
    op.create_index("ix_telegram_users_link_code", "telegram_users", ["link_code"], unique=False)
    op.create_index("ix_telegram_users_referral_code", "telegram_users", ["referral_code"], unique=True)

    op.create_table(
        "telegram_price_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "telegram_id",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alert_type", sa.String(length=8), nullable=False),
        sa.Column("target_price", sa.Numeric(20, 10), nullable=False),
        sa.Column("triggered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("triggered_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("alert_type IN ('above', 'below')", name="ck_alerts_alert_type"),
    )
    op.create_index("ix_telegram_price_alerts_telegram_id", "telegram_price_alerts", ["telegram_id"], unique=False)
    op.create_index("ix_telegram_price_alerts_triggered", "telegram_price_alerts", ["triggered"], unique=False)

    op.create_table(
        "telegram_watchlist",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "telegram_id",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("nickname", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("telegram_id", "wallet_address", name="uq_watchlist_owner_wallet"),
    )
    op.create_index("ix_telegram_watchlist_telegram_id", "telegram_watchlist", ["telegram_id"], unique=False)
    op.create_index("ix_telegram_watchlist_wallet_address", "telegram_watchlist", ["wallet_address"], unique=False)

    op.create_table(
        "telegram_referrals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "referrer_telegram_id",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "referred_telegram_id",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("referral_code", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'completed', 'rewarded')", name="ck_referrals_status"),
    )
    op.create_index("ix_telegram_referrals_referrer_telegram_id", "telegram_referrals", ["referrer_telegram_id"], unique=False)
    op.create_index("ix_telegram_referrals_referral_code", "telegram_referrals", ["referral_code"], unique=False)

    op.create_table(
        "telegram_support_tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "telegram_id",
            sa.BigInteger(),
            sa.ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("subject", sa.String(length=120), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'closed')", name="ck_support_tickets_status"
        ),
    )
    op.create_index("ix_telegram_support_tickets_telegram_id", "telegram_support_tickets", ["telegram_id"], unique=False)
    op.create_index("ix_telegram_support_tickets_status", "telegram_support_tickets", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("telegram_support_tickets")
    op.drop_table("telegram_referrals")
    op.drop_table("telegram_watchlist")
    op.drop_table("telegram_price_alerts")
    op.drop_table("telegram_users")
