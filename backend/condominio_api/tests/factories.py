"""Construtores de dados para testes com banco."""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from condominio_api.core.security import get_password_hash
from condominio_api.db.models import Module, ModulePermission, User


CRUD_ACTIONS = ("create", "read", "update", "delete")


async def create_user(
    db: AsyncSession,
    email: str,
    *,
    super_admin: bool = False,
    is_active: bool = True,
    password: Optional[str] = None,
) -> User:
    user = User(
        email=email,
        first_name=email.split("@")[0].title(),
        last_name="Teste",
        hashed_password=get_password_hash(password) if password else "",
        is_active=is_active,
        is_super_admin=super_admin,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_module(
    db: AsyncSession,
    code: str,
    *,
    actions: Iterable[str] = CRUD_ACTIONS,
    type: str = "crud",
    order: int = 0,
    is_active: bool = True,
) -> Module:
    module = Module(
        code=code,
        name=code.title(),
        type=type,
        order=order,
        is_active=is_active,
    )
    for action in actions:
        module.permissions.append(ModulePermission(code=action, name=f"{action} {code}"))
    db.add(module)
    await db.commit()
    return module


def permission_of(module: Module, action: str) -> ModulePermission:
    return next(permission for permission in module.permissions if permission.code == action)


async def seed_catalogue(db: AsyncSession) -> dict[str, Module]:
    """Catálogo mínimo: dois módulos CRUD e um especializado."""
    return {
        "copropiedades": await create_module(
            db, "copropiedades", actions=("read", "update"), order=20
        ),
        "objetivos": await create_module(db, "objetivos", order=40),
        "reportes": await create_module(
            db, "reportes", actions=("read", "export"), type="specialized", order=90
        ),
    }
