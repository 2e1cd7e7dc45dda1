"""
Concessões diretas a usuários: acesso a módulo e permissões granulares.
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
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from condominio_api.core.permissions import Scope
from condominio_api.db.base import Base, TimestampMixin


class UserModule(TimestampMixin, Base):
    """Acesso direto de um usuário a um módulo.

    Existe no máximo uma linha por (usuário, módulo); revogar desativa a
    linha e conceder novamente a reativa.
    """

    __tablename__ = "user_modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
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
        UniqueConstraint("user_id", "module_id", name="uq_user_modules_user_module"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserModule(user_id={self.user_id}, module_id={self.module_id}, "
            f"active={self.is_active})>"
        )


class UserPermission(TimestampMixin, Base):
    """Permissão granular concedida diretamente, com escopo.

    A tupla (usuário, permissão, escopo, scope_id) identifica a concessão.
    ``scope_id`` só é preenchido para escopo ``tenant``.
    """

    __tablename__ = "user_permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
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
            f"<UserPermission(user_id={self.user_id}, permission_id={self.permission_id}, "
            f"scope={self.scope}, scope_id={self.scope_id}, active={self.is_active})>"
        )


# NULLs são distintos em índices únicos; coalesce inclui scope_id nulo na identidade
Index(
    "uq_user_permissions_identity",
    UserPermission.user_id,
    UserPermission.permission_id,
    UserPermission.scope,
    func.coalesce(UserPermission.scope_id, ""),
    unique=True,
)
