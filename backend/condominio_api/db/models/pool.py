"""
Pools de usuários: grupos nomeados que compartilham concessões.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    and_,
    func,
)
from sqlalchemy.orm import relationship

from condominio_api.core.permissions import Scope
from condominio_api.db.base import Base, TimestampMixin


class Pool(TimestampMixin, Base):
    """Grupo de usuários. Um pool inativo não concede nada aos membros."""

    __tablename__ = "user_pools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @classmethod
    def active_clause(cls):
        return and_(cls.is_active.is_(True), cls.deleted_at.is_(None))

    def __repr__(self) -> str:
        return f"<Pool(name={self.name}, active={self.is_active})>"


class PoolMember(TimestampMixin, Base):
    """Vínculo usuário-pool."""

    __tablename__ = "user_pool_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pool_id = Column(
        Uuid,
        ForeignKey("user_pools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    added_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    added_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("pool_id", "user_id", name="uq_user_pool_members_pool_user"),
    )


class PoolModule(TimestampMixin, Base):
    """Acesso a módulo concedido a todos os membros do pool."""

    __tablename__ = "pool_modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pool_id = Column(
        Uuid,
        ForeignKey("user_pools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        Uuid,
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    granted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    module = relationship("Module")

    __table_args__ = (
        UniqueConstraint("pool_id", "module_id", name="uq_pool_modules_pool_module"),
    )


class PoolPermission(TimestampMixin, Base):
    """Permissão granular concedida a todos os membros do pool."""

    __tablename__ = "pool_permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pool_id = Column(
        Uuid,
        ForeignKey("user_pools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_id = Column(
        Uuid,
        ForeignKey("module_permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scope = Column(String(20), nullable=False, default=Scope.ALL.value)
    scope_id = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    granted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    permission = relationship("ModulePermission")

    def __repr__(self) -> str:
        return (
            f"<PoolPermission(pool_id={self.pool_id}, permission_id={self.permission_id}, "
            f"scope={self.scope}, scope_id={self.scope_id}, active={self.is_active})>"
        )


# NULLs são distintos em índices únicos; coalesce inclui scope_id nulo na identidade
Index(
    "uq_pool_permissions_identity",
    PoolPermission.pool_id,
    PoolPermission.permission_id,
    PoolPermission.scope,
    func.coalesce(PoolPermission.scope_id, ""),
    unique=True,
)
