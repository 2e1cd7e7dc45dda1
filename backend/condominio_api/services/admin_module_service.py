"""Administração do catálogo de módulos."""

from __future__ import annotations

from typing import Iterable, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from condominio_api.core.exceptions import ConflictException, NotFoundException
from condominio_api.core.logging import get_logger
from condominio_api.core.permissions import ModuleType
from condominio_api.db.models import Module, ModulePermission
from condominio_api.services.permissions_cache import (
    PermissionsCache,
    get_permissions_cache,
)


logger = get_logger(__name__)


class AdminModuleService:
    """CRUD de módulos. Mudar a atividade de um módulo limpa todo o cache."""

    def __init__(self, db: AsyncSession, cache: Optional[PermissionsCache] = None):
        self.db = db
        self.cache = cache or get_permissions_cache()

    async def list_modules(self) -> list[Module]:
        result = await self.db.execute(
            select(Module)
            .options(selectinload(Module.permissions))
            .where(Module.deleted_at.is_(None))
            .order_by(Module.order, Module.code)
        )
        return list(result.scalars().all())

    async def get_module(self, module_id: uuid.UUID) -> Module:
        result = await self.db.execute(
            select(Module)
            .options(selectinload(Module.permissions))
            .where(Module.id == module_id, Module.deleted_at.is_(None))
        )
        module = result.scalar_one_or_none()
        if module is None:
            raise NotFoundException("Módulo não encontrado", details={"module_id": str(module_id)})
        return module

    async def create_module(
        self,
        code: str,
        name: str,
        type: ModuleType | str = ModuleType.CRUD,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        order: int = 0,
        permissions: Iterable[dict] = (),
    ) -> Module:
        """
        Cria módulo com suas ações.

        Args:
            permissions: itens ``{"code", "name", "description"}``
        """
        existing = await self.db.execute(select(Module.id).where(Module.code == code))
        if existing.first() is not None:
            raise ConflictException(
                "Já existe um módulo com este código",
                code="duplicate_module",
                details={"module_code": code},
            )

        module = Module(
            code=code,
            name=name,
            type=ModuleType(type).value,
            description=description,
            icon=icon,
            order=order,
            is_active=True,
        )
        seen = set()
        for item in permissions:
            if item["code"] in seen:
                continue
            seen.add(item["code"])
            module.permissions.append(
                ModulePermission(
                    code=item["code"],
                    name=item.get("name") or item["code"],
                    description=item.get("description"),
                )
            )

        self.db.add(module)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("module_created", module_code=code, actions=sorted(seen))
        return await self.get_module(module.id)

    async def update_module(
        self,
        module_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        order: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> Module:
        module = await self.get_module(module_id)
        if name is not None:
            module.name = name
        if description is not None:
            module.description = description
        if icon is not None:
            module.icon = icon
        if order is not None:
            module.order = order

        activity_changed = is_active is not None and is_active != module.is_active
        if activity_changed:
            module.is_active = is_active

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if activity_changed:
            self.cache.clear()
            logger.info("module_status_changed", module_code=module.code, is_active=is_active)
        return await self.get_module(module_id)

    async def toggle_module_status(self, module_id: uuid.UUID) -> Module:
        module = await self.get_module(module_id)
        return await self.update_module(module_id, is_active=not module.is_active)
