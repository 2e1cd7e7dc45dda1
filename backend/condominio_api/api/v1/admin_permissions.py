"""
Endpoints de administração de permissões de usuários.

Concessão e revogação de acesso a módulos e de permissões granulares.
Erros de domínio (404/409/400) são convertidos pelo handler de AppException.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from condominio_api.api.deps import require_super_admin
from condominio_api.db.base import get_db
from condominio_api.db.models.user import User
from condominio_api.schemas.permissions import (
    EffectiveModule,
    EffectivePermission,
    ModuleGrantRequest,
    ModulePermissionResponse,
    ModuleUser,
    PermissionGrantRequest,
    UserEffectivePermissions,
    UserModuleGrantResponse,
    UserPermissionGrantResponse,
    UserSearchResponse,
    UserSummary,
)
from condominio_api.services.admin_permission_service import AdminPermissionService


router = APIRouter(prefix="/admin/permissions", tags=["Admin - Permissões"])


@router.get(
    "/modules/{code}/permissions",
    response_model=list[ModulePermissionResponse],
    summary="Ações disponíveis no módulo",
)
async def list_module_permissions(
    code: str,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> list[ModulePermissionResponse]:
    permissions = await AdminPermissionService(db).get_module_permissions(code)
    return [ModulePermissionResponse.model_validate(item) for item in permissions]


@router.get(
    "/modules/{code}/users",
    response_model=list[ModuleUser],
    summary="Usuários com acesso ao módulo",
)
async def list_module_users(
    code: str,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> list[ModuleUser]:
    rows = await AdminPermissionService(db).get_users_by_module(code)
    return [
        ModuleUser(
            user=UserSummary.model_validate(row["user"]),
            source=row["source"],
            pool_name=row["pool_name"],
        )
        for row in rows
    ]


@router.get("/users", response_model=UserSearchResponse, summary="Buscar usuários")
async def search_users(
    search: Optional[str] = Query(None, description="Busca por nome/email"),
    module_code: Optional[str] = Query(None, description="Apenas usuários com acesso direto ao módulo"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> UserSearchResponse:
    result = await AdminPermissionService(db).search_users(
        search=search, module_code=module_code, page=page, limit=limit
    )
    return UserSearchResponse(
        items=[UserSummary.model_validate(user) for user in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.get(
    "/users/{user_id}",
    response_model=UserEffectivePermissions,
    summary="Permissões efetivas do usuário",
    description="Módulos e permissões do usuário com a origem (direta ou pool).",
)
async def get_user_permissions(
    user_id: uuid.UUID,
    _: object = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> UserEffectivePermissions:
    result = await AdminPermissionService(db).get_user_effective_permissions(user_id)
    return UserEffectivePermissions(
        user=UserSummary.model_validate(result["user"]),
        is_super_admin=result["is_super_admin"],
        modules=[EffectiveModule(**item) for item in result["modules"]],
        permissions=[EffectivePermission(**item) for item in result["permissions"]],
    )


@router.post(
    "/users/{user_id}/modules",
    response_model=UserModuleGrantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Conceder acesso a módulo",
)
async def grant_module_access(
    user_id: uuid.UUID,
    payload: ModuleGrantRequest,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> UserModuleGrantResponse:
    grant = await AdminPermissionService(db).grant_module_access(
        admin_id=admin.id,
        user_id=user_id,
        module_id=payload.module_id,
        expires_at=payload.expires_at,
    )
    return UserModuleGrantResponse.model_validate(grant)


@router.delete(
    "/users/{user_id}/modules/{module_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revogar acesso a módulo",
    description="Revoga também as permissões diretas do usuário no módulo.",
)
async def revoke_module_access(
    user_id: uuid.UUID,
    module_id: uuid.UUID,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> None:
    await AdminPermissionService(db).revoke_module_access(
        admin_id=admin.id, user_id=user_id, module_id=module_id
    )


@router.post(
    "/users/{user_id}/permissions",
    response_model=UserPermissionGrantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Conceder permissão granular",
)
async def grant_permission(
    user_id: uuid.UUID,
    payload: PermissionGrantRequest,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> UserPermissionGrantResponse:
    grant = await AdminPermissionService(db).grant_permission(
        admin_id=admin.id,
        user_id=user_id,
        module_permission_id=payload.permission_id,
        scope=payload.scope,
        scope_id=payload.scope_id,
        expires_at=payload.expires_at,
    )
    return UserPermissionGrantResponse.model_validate(grant)


@router.delete(
    "/users/{user_id}/permissions/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revogar permissão granular",
)
async def revoke_permission(
    user_id: uuid.UUID,
    permission_id: uuid.UUID,
    admin: User = Depends(require_super_admin()),
    db: AsyncSession = Depends(get_db),
) -> None:
    await AdminPermissionService(db).revoke_permission(
        admin_id=admin.id, user_id=user_id, permission_id=permission_id
    )
