"""create_early_access_signups

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "a7c1e2d3f4b5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if "early_access_signups" in inspector.get_table_names():
        return

    op.create_table(
        "early_access_signups",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("confirmation_token", sa.String(length=128), nullable=False),
        sa.Column("confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("confirmation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(confirmed AND confirmed_at IS NOT NULL) OR (NOT confirmed AND confirmed_at IS NULL)",
            name="ck_early_access_signups_confirmed_at",
        ),
    )
    op.create_index("ix_early_access_signups_email", "early_access_signups", ["email"], unique=True)
    op.create_index("ix_early_access_signups_confirmation_token", "early_access_signups", ["confirmation_token"])
    op.create_index("ix_early_access_signups_confirmed", "early_access_signups", ["confirmed"])
    op.create_index("ix_early_access_signups_created_at", "early_access_signups", ["created_at"])
    op.alter_column("early_access_signups", "created_at", server_default=None)


def downgrade() -> None:
    op.drop_index("ix_early_access_signups_created_at", table_name="early_access_signups")
    op.drop_index("ix_early_access_signups_confirmed", table_name="early_access_signups")
    op.drop_index("ix_early_access_signups_confirmation_token", table_name="early_access_signups")
    op.drop_index("ix_early_access_signups_email", table_name="early_access_signups")
    op.drop_table("early_access_signups")
