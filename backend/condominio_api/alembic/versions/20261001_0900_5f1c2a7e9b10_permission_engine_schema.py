"""Create users, module catalogue, direct grants and pools.

Revisão:
  - `users` com flag `is_super_admin`
  - `modules` / `module_permissions` (código de ação único por módulo)
  - concessões diretas `user_modules` / `user_permissions`
  - pools `user_pools`, `user_pool_members`, `pool_modules`, `pool_permissions`
  - escopo restrito a {own, tenant, all}; `scope_id` apenas para tenant
  - identidade das concessões granulares em índice único com
    `coalesce(scope_id, '')`, para que `scope_id` nulo não duplique linhas
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "5f1c2a7e9b10"
down_revision = None
branch_labels = None
depends_on = None


VALID_SCOPES = ("own", "tenant", "all")
SCOPE_ID_CHECK = (
    "(scope = 'tenant' AND scope_id IS NOT NULL) "
    "OR (scope <> 'tenant' AND scope_id IS NULL)"
)


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _grant_columns(timestamp_column: str = "granted_at", actor_column: str = "granted_by") -> list[sa.Column]:
    return [
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        _uuid(actor_column, nullable=True),
        sa.Column(timestamp_column, sa.DateTime(timezone=True), nullable=False),
    ]


def _scope_columns(table: str) -> list:
    return [
        sa.Column("scope", sa.String(length=20), server_default="all", nullable=False),
        sa.Column("scope_id", sa.String(length=100), nullable=True),
        sa.CheckConstraint(f"scope IN {VALID_SCOPES}", name=f"ck_{table}_scope"),
        sa.CheckConstraint(SCOPE_ID_CHECK, name=f"ck_{table}_scope_id"),
    ]


def _create_identity_index(table: str, owner_column: str) -> None:
    # NULLs são distintos em índices únicos; coalesce inclui scope_id nulo na identidade
    op.create_index(
        f"uq_{table}_identity",
        table,
        [owner_column, "permission_id", "scope", sa.text("coalesce(scope_id, '')")],
        unique=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid("id", nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), server_default="", nullable=False),
        sa.Column("hashed_password", sa.String(length=255), server_default="", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("is_super_admin", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_is_active"), "users", ["is_active"], unique=False)

    op.create_table(
        "modules",
        _uuid("id", nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("type", sa.String(length=20), server_default="crud", nullable=False),
        sa.Column("order", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("type IN ('crud', 'specialized')", name="ck_modules_type"),
        sa.PrimaryKeyConstraint("id", name="pk_modules"),
    )
    op.create_index(op.f("ix_modules_code"), "modules", ["code"], unique=True)

    op.create_table(
        "module_permissions",
        _uuid("id", nullable=False),
        _uuid("module_id", nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_module_permissions"),
        sa.UniqueConstraint("module_id", "code", name="uq_module_permissions_module_code"),
    )
    op.create_index(
        op.f("ix_module_permissions_module_id"), "module_permissions", ["module_id"]
    )

    op.create_table(
        "user_modules",
        _uuid("id", nullable=False),
        _uuid("user_id", nullable=False),
        _uuid("module_id", nullable=False),
        *_grant_columns(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_user_modules"),
        sa.UniqueConstraint("user_id", "module_id", name="uq_user_modules_user_module"),
    )
    op.create_index(op.f("ix_user_modules_user_id"), "user_modules", ["user_id"])
    op.create_index(op.f("ix_user_modules_module_id"), "user_modules", ["module_id"])

    op.create_table(
        "user_permissions",
        _uuid("id", nullable=False),
        _uuid("user_id", nullable=False),
        _uuid("permission_id", nullable=False),
        *_scope_columns("user_permissions"),
        *_grant_columns(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["permission_id"], ["module_permissions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_user_permissions"),
    )
    _create_identity_index("user_permissions", "user_id")
    op.create_index(op.f("ix_user_permissions_user_id"), "user_permissions", ["user_id"])
    op.create_index(
        op.f("ix_user_permissions_permission_id"), "user_permissions", ["permission_id"]
    )

    op.create_table(
        "user_pools",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_user_pools"),
        sa.UniqueConstraint("name", name="uq_user_pools_name"),
    )

    op.create_table(
        "user_pool_members",
        _uuid("id", nullable=False),
        _uuid("pool_id", nullable=False),
        _uuid("user_id", nullable=False),
        *_grant_columns(timestamp_column="added_at", actor_column="added_by"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pool_id"], ["user_pools.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["added_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_user_pool_members"),
        sa.UniqueConstraint("pool_id", "user_id", name="uq_user_pool_members_pool_user"),
    )
    op.create_index(op.f("ix_user_pool_members_pool_id"), "user_pool_members", ["pool_id"])
    op.create_index(op.f("ix_user_pool_members_user_id"), "user_pool_members", ["user_id"])

    op.create_table(
        "pool_modules",
        _uuid("id", nullable=False),
        _uuid("pool_id", nullable=False),
        _uuid("module_id", nullable=False),
        *_grant_columns(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pool_id"], ["user_pools.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_pool_modules"),
        sa.UniqueConstraint("pool_id", "module_id", name="uq_pool_modules_pool_module"),
    )
    op.create_index(op.f("ix_pool_modules_pool_id"), "pool_modules", ["pool_id"])
    op.create_index(op.f("ix_pool_modules_module_id"), "pool_modules", ["module_id"])

    op.create_table(
        "pool_permissions",
        _uuid("id", nullable=False),
        _uuid("pool_id", nullable=False),
        _uuid("permission_id", nullable=False),
        *_scope_columns("pool_permissions"),
        *_grant_columns(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pool_id"], ["user_pools.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["permission_id"], ["module_permissions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_pool_permissions"),
    )
    _create_identity_index("pool_permissions", "pool_id")
    op.create_index(op.f("ix_pool_permissions_pool_id"), "pool_permissions", ["pool_id"])
    op.create_index(
        op.f("ix_pool_permissions_permission_id"), "pool_permissions", ["permission_id"]
    )


def downgrade() -> None:
    op.drop_table("pool_permissions")
    op.drop_table("pool_modules")
    op.drop_table("user_pool_members")
    op.drop_table("user_pools")
    op.drop_table("user_permissions")
    op.drop_table("user_modules")
    op.drop_table("module_permissions")
    op.drop_table("modules")
    op.drop_table("users")
