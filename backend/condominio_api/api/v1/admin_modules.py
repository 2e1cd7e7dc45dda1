"""
Endpoints de administração do catálogo de módulos.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from condominio_api.api.deps import require_super_admin
from condominio_api.db.base import get_db
from condominio_api.schemas.permissions import ModuleCreate, ModuleResponse, ModuleUpdate
from condominio_api.services.admin_module_service import AdminModuleService


router = APIRouter(prefix="/admin/modules", tags=["Admin - Módulos"])


@router.get("", response_model=list[ModuleResponse], summary="Listar módulos")
async def list_modules(
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> list[ModuleResponse]:
    """Inclui módulos inativos."""
    modules = await AdminModuleService(db).list_modules()
    return [ModuleResponse.model_validate(module) for module in modules]


@router.get("/{module_id}", response_model=ModuleResponse, summary="Detalhar módulo")
async def get_module(
    module_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> ModuleResponse:
    module = await AdminModuleService(db).get_module(module_id)
    return ModuleResponse.model_validate(module)


@router.post(
    "",
    response_model=ModuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Criar módulo",
)
async def create_module(
    payload: ModuleCreate,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> ModuleResponse:
    module = await AdminModuleService(db).create_module(
        code=payload.code,
        name=payload.name,
        type=payload.type,
        description=payload.description,
        icon=payload.icon,
        order=payload.order,
        permissions=[item.model_dump() for item in payload.permissions],
    )
    return ModuleResponse.model_validate(module)


@router.patch("/{module_id}", response_model=ModuleResponse, summary="Atualizar módulo")
async def update_module(
    module_id: uuid.UUID,
    payload: ModuleUpdate,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> ModuleResponse:
    module = await AdminModuleService(db).update_module(
        module_id, **payload.model_dump(exclude_none=True)
    )
    return ModuleResponse.model_validate(module)


@router.post(
    "/{module_id}/toggle",
    response_model=ModuleResponse,
    summary="Ativar/desativar módulo",
)
async def toggle_module(
    module_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> ModuleResponse:
    module = await AdminModuleService(db).toggle_module_status(module_id)
    return ModuleResponse.model_validate(module)
