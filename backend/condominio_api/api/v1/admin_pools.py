"""
Endpoints de administração de pools de usuários.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from condominio_api.api.deps import require_super_admin
from condominio_api.db.base import get_db
from condominio_api.db.models.user import User
from condominio_api.schemas.permissions import (
    ModuleGrantRequest,
    PermissionGrantRequest,
    PoolCreate,
    PoolDetail,
    PoolListItem,
    PoolMemberRequest,
    PoolMemberResponse,
    PoolModuleResponse,
    PoolPermissionResponse,
    PoolResponse,
    PoolUpdate,
    UserSummary,
)
from condominio_api.services.pool_service import PoolService


router = APIRouter(prefix="/admin/pools", tags=["Admin - Pools"])


@router.get("", response_model=list[PoolListItem], summary="Listar pools")
async def list_pools(
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> list[PoolListItem]:
    rows = await PoolService(db).list_pools()
    return [
        PoolListItem(
            **PoolResponse.model_validate(row["pool"]).model_dump(),
            member_count=row["member_count"],
        )
        for row in rows
    ]


@router.post(
    "",
    response_model=PoolResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Criar pool",
)
async def create_pool(
    payload: PoolCreate,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolResponse:
    pool = await PoolService(db).create(admin.id, payload.name, payload.description)
    return PoolResponse.model_validate(pool)


@router.get("/{pool_id}", response_model=PoolDetail, summary="Detalhar pool")
async def get_pool(
    pool_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolDetail:
    detail = await PoolService(db).get_pool(pool_id)
    return PoolDetail(
        pool=PoolResponse.model_validate(detail["pool"]),
        members=[UserSummary.model_validate(user) for user in detail["members"]],
        modules=[PoolModuleResponse.model_validate(item) for item in detail["modules"]],
        permissions=[
            PoolPermissionResponse.model_validate(item) for item in detail["permissions"]
        ],
    )


@router.patch("/{pool_id}", response_model=PoolResponse, summary="Atualizar pool")
async def update_pool(
    pool_id: uuid.UUID,
    payload: PoolUpdate,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolResponse:
    pool = await PoolService(db).update(pool_id, **payload.model_dump(exclude_none=True))
    return PoolResponse.model_validate(pool)


@router.delete("/{pool_id}", response_model=PoolResponse, summary="Desativar pool")
async def deactivate_pool(
    pool_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolResponse:
    """O pool é desativado, não removido; os membros perdem o que ele concedia."""
    pool = await PoolService(db).deactivate(pool_id)
    return PoolResponse.model_validate(pool)


@router.post(
    "/{pool_id}/members",
    response_model=PoolMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Adicionar membro",
)
async def add_member(
    pool_id: uuid.UUID,
    payload: PoolMemberRequest,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolMemberResponse:
    member = await PoolService(db).add_member(admin.id, pool_id, payload.user_id)
    return PoolMemberResponse.model_validate(member)


@router.delete(
    "/{pool_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remover membro",
)
async def remove_member(
    pool_id: uuid.UUID,
    user_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> None:
    await PoolService(db).remove_member(pool_id, user_id)


@router.post(
    "/{pool_id}/modules",
    response_model=PoolModuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Conceder módulo ao pool",
)
async def grant_pool_module(
    pool_id: uuid.UUID,
    payload: ModuleGrantRequest,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolModuleResponse:
    grant = await PoolService(db).grant_module_access(
        admin.id, pool_id, payload.module_id, expires_at=payload.expires_at
    )
    return PoolModuleResponse.model_validate(grant)


@router.delete(
    "/{pool_id}/modules/{module_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revogar módulo do pool",
)
async def revoke_pool_module(
    pool_id: uuid.UUID,
    module_id: uuid.UUID,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> None:
    await PoolService(db).revoke_module_access(admin.id, pool_id, module_id)


@router.post(
    "/{pool_id}/permissions",
    response_model=PoolPermissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Conceder permissão ao pool",
)
async def grant_pool_permission(
    pool_id: uuid.UUID,
    payload: PermissionGrantRequest,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> PoolPermissionResponse:
    grant = await PoolService(db).grant_permission(
        admin.id,
        pool_id,
        payload.permission_id,
        payload.scope,
        scope_id=payload.scope_id,
        expires_at=payload.expires_at,
    )
    return PoolPermissionResponse.model_validate(grant)


@router.delete(
    "/{pool_id}/permissions/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revogar permissão do pool",
)
async def revoke_pool_permission(
    pool_id: uuid.UUID,
    permission_id: uuid.UUID,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> None:
    await PoolService(db).revoke_permission(admin.id, pool_id, permission_id)
