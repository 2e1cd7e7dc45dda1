"""Testes do catálogo de módulos."""

from __future__ import annotations

import uuid

import pytest

from condominio_api.core.exceptions import ConflictException, NotFoundException
from condominio_api.services.admin_module_service import AdminModuleService
from condominio_api.services.permissions_cache import CachedUserAccess


@pytest.mark.asyncio
async def test_create_module_with_actions(db_session, permissions_cache):
    service = AdminModuleService(db_session, cache=permissions_cache)

    module = await service.create_module(
        code="manutencao",
        name="Manutenção",
        icon="wrench",
        order=15,
        permissions=[
            {"code": "read", "name": "Ver manutenções"},
            {"code": "create", "name": "Abrir chamado"},
            {"code": "read", "name": "duplicada"},
        ],
    )

    assert module.type == "crud"
    assert module.is_active is True
    assert sorted(permission.code for permission in module.permissions) == ["create", "read"]

    with pytest.raises(ConflictException) as exc_info:
        await service.create_module(code="manutencao", name="Outro")
    assert exc_info.value.code == "duplicate_module"


@pytest.mark.asyncio
async def test_toggle_status_clears_permission_cache(db_session, permissions_cache):
    service = AdminModuleService(db_session, cache=permissions_cache)
    module = await service.create_module(code="reservas", name="Reservas", type="specialized")
    permissions_cache.set("u-1", CachedUserAccess())

    toggled = await service.toggle_module_status(module.id)

    assert toggled.is_active is False
    assert permissions_cache.get("u-1") is None
    assert [item.code for item in await service.list_modules()] == ["reservas"]


@pytest.mark.asyncio
async def test_update_without_status_change_keeps_cache(db_session, permissions_cache):
    service = AdminModuleService(db_session, cache=permissions_cache)
    module = await service.create_module(code="reservas", name="Reservas")
    permissions_cache.set("u-1", CachedUserAccess())

    updated = await service.update_module(module.id, name="Reservas de áreas", is_active=True)

    assert updated.name == "Reservas de áreas"
    assert permissions_cache.get("u-1") is not None


@pytest.mark.asyncio
async def test_get_unknown_module_is_not_found(db_session, permissions_cache):
    service = AdminModuleService(db_session, cache=permissions_cache)

    with pytest.raises(NotFoundException):
        await service.get_module(uuid.uuid4())
