"""Login rate limiting - failed attempt counters per client

Revision ID: 002_login_attempts
Revises: 001_initial
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002_login_attempts"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "login_attempts",
        sa.Column("key", sa.String(80), primary_key=True),
        sa.Column("count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("reset_at", sa.Float, nullable=False),
        sa.Column("blocked_until", sa.Float),
    )


def downgrade() -> None:
    op.drop_table("login_attempts")
