"""create_salla_auth

Revision ID: 3c7e1f0a9b42
Revises:
Create Date: 2025-01-20 10:15:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c7e1f0a9b42"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # One row per merchant; the row also carries the refresh lock
    op.create_table(
        "salla_auth",
        sa.Column("merchant_id", sa.String(), primary_key=True),
        sa.Column("access_token", sa.String(), nullable=False),
        sa.Column("refresh_token", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("scope", sa.String(), nullable=True),
        sa.Column("token_type", sa.String(), nullable=False, server_default="bearer"),
        sa.Column("last_refreshed_at", sa.DateTime(), nullable=False),
        sa.Column("is_refreshing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("refresh_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_salla_auth_merchant_id", "salla_auth", ["merchant_id"])
    op.create_index("ix_salla_auth_expires_at", "salla_auth", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_salla_auth_expires_at", table_name="salla_auth")
    op.drop_index("ix_salla_auth_merchant_id", table_name="salla_auth")
    op.drop_table("salla_auth")
