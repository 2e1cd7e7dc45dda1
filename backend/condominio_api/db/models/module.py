"""
Catálogo de módulos funcionais e das ações disponíveis em cada um.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    and_,
)
from sqlalchemy.orm import relationship

from condominio_api.core.permissions import ModuleType
from condominio_api.db.base import Base, TimestampMixin


class Module(TimestampMixin, Base):
    """Área funcional do produto (ex.: ``objetivos``, ``reportes``).

    Módulos ``crud`` seguem o ciclo create/read/update/delete; módulos
    ``specialized`` têm ações próprias.
    """

    __tablename__ = "modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    type = Column(String(20), nullable=False, default=ModuleType.CRUD.value)
    order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    permissions = relationship(
        "ModulePermission",
        back_populates="module",
        order_by="ModulePermission.code",
        cascade="all, delete-orphan",
    )

    @classmethod
    def active_clause(cls):
        return and_(cls.is_active.is_(True), cls.deleted_at.is_(None))

    @property
    def is_crud(self) -> bool:
        return self.type == ModuleType.CRUD.value

    def __repr__(self) -> str:
        return f"<Module(code={self.code}, type={self.type}, active={self.is_active})>"


class ModulePermission(TimestampMixin, Base):
    """Ação disponível dentro de um módulo (``code`` único por módulo)."""

    __tablename__ = "module_permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(
        Uuid,
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    module = relationship("Module", back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("module_id", "code", name="uq_module_permissions_module_code"),
    )

    def __repr__(self) -> str:
        return f"<ModulePermission(module_id={self.module_id}, code={self.code})>"
