"""Token bindings and session content tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from token_session.config import settings

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        settings.token_table_name,
        sa.Column("id", sa.CHAR(32), nullable=False),
        sa.Column("expire", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.CHAR(32), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{settings.token_table_name}_expire", settings.token_table_name, ["expire"])
    op.create_table(
        settings.session_table_name,
        sa.Column("id", sa.CHAR(32), nullable=False),
        sa.Column("expire", sa.Integer(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{settings.session_table_name}_expire", settings.session_table_name, ["expire"])


def downgrade() -> None:
    op.drop_index(f"ix_{settings.session_table_name}_expire", table_name=settings.session_table_name)
    op.drop_table(settings.session_table_name)
    op.drop_index(f"ix_{settings.token_table_name}_expire", table_name=settings.token_table_name)
    op.drop_table(settings.token_table_name)
