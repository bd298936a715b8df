"""Create auth tables: users, api_keys, user_roles, role_features.

Revision ID: 001_auth_core
Revises:
Create Date: 2026-10-17

users carries the four claim columns backing token invalidation.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_auth_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(256), nullable=False),
        sa.Column("email_address", sa.String(512), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("auth_provider", sa.String(16), nullable=False, server_default="LOCAL"),
        sa.Column("auth_provider_id", sa.String(256), nullable=True),
        sa.Column("auth_provider_username", sa.String(256), nullable=True),
        sa.Column("auth_provider_profile_img_url", sa.Text(), nullable=True),
        # Claim columns: opaque random secrets, rotated to revoke tokens
        sa.Column("auth_claim", sa.String(32), nullable=True),
        sa.Column("pw_reset_claim", sa.String(32), nullable=True),
        sa.Column("pw_reset_auth_claim", sa.String(32), nullable=True),
        sa.Column("verification_claim", sa.String(32), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "auth_provider IN ('LOCAL', 'GOOGLE', 'GITHUB')",
            name="ck_users_auth_provider",
        ),
    )
    op.create_index("idx_users_username", "users", ["username"], unique=True)
    op.create_index("idx_users_email_address", "users", ["email_address"], unique=True)
    op.create_index(
        "idx_users_auth_provider_id", "users", ["auth_provider", "auth_provider_id"]
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("api_key", sa.String(64), nullable=False),
        sa.Column("api_secret", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_api_keys_user_id", "api_keys", ["user_id"], unique=True)
    op.create_index("idx_api_keys_api_key", "api_keys", ["api_key"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role_name", sa.String(64), nullable=False),
        sa.UniqueConstraint("user_id", "role_name", name="uq_user_roles_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "role_features",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("role_name", sa.String(64), nullable=False),
        sa.Column("feature_cd", sa.String(64), nullable=False),
        sa.UniqueConstraint(
            "role_name", "feature_cd", name="uq_role_features_role_feature"
        ),
    )
    op.create_index("ix_role_features_role_name", "role_features", ["role_name"])


def downgrade() -> None:
    op.drop_table("role_features")
    op.drop_table("user_roles")
    op.drop_table("api_keys")
    op.drop_table("users")
