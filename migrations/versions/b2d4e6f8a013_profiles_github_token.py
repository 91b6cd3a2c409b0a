"""profiles_github_token

Add the profiles table holding each user's encrypted GitHub token.

Revision ID: b2d4e6f8a013
Revises: 7f3a9c2e1b40
Create Date: 2026-10-18 14:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b2d4e6f8a013"
down_revision = "7f3a9c2e1b40"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("github_token_encrypted", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade():
    bind = op.get_bind()
    if "profiles" in set(sa_inspect(bind).get_table_names()):
        op.drop_table("profiles")
