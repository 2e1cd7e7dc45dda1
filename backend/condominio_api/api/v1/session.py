"""
Endpoints da sessão do usuário autenticado.

Fornecem ao console web a navegação (módulos e ações) e as permissões
granulares por módulo.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from condominio_api.api.deps import get_current_user, get_permission_service
from condominio_api.db.models.user import User
from condominio_api.schemas.permissions import NavigationModule, ScopedPermission
from condominio_api.services.permission_service import PermissionService


router = APIRouter(prefix="/session", tags=["Sessão"])


@router.get(
    "/modules",
    response_model=list[NavigationModule],
    summary="Módulos acessíveis",
    description="Módulos ativos acessíveis ao usuário, com as ações que ele possui, na ordem de navegação.",
)
async def list_session_modules(
    current_user: User = Depends(get_current_user),
    permission_service: PermissionService = Depends(get_permission_service),
) -> list[NavigationModule]:
    modules = await permission_service.get_modules_with_actions_for_user(current_user.id)
    return [NavigationModule(**module) for module in modules]


@router.get(
    "/permissions/{module_code}",
    response_model=list[ScopedPermission],
    summary="Permissões no módulo",
)
async def list_session_module_permissions(
    module_code: str,
    current_user: User = Depends(get_current_user),
    permission_service: PermissionService = Depends(get_permission_service),
) -> list[ScopedPermission]:
    """Lista vazia quando o usuário não tem acesso ao módulo."""
    permissions = await permission_service.get_user_module_permissions(
        current_user.id, module_code
    )
    return [ScopedPermission(**permission) for permission in permissions]
