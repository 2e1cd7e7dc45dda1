"""
Dependencies para endpoints FastAPI.

Autenticação por Bearer JWT e as factories de autorização usadas pelas rotas:
``require_module``, ``require_permission`` e ``require_super_admin``.
"""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from collections.abc import Callable
from typing import Any, Optional
import json
import uuid

from condominio_api.db.base import get_db
from condominio_api.core.logging import get_logger
from condominio_api.core.permissions import PermissionContext, PermissionKey
from condominio_api.core.security import decode_access_token
from condominio_api.core.tenant import get_condominium_id
from condominio_api.db.models.user import User
from condominio_api.services.permission_service import PermissionService


logger = get_logger(__name__)

# Security scheme opcional: a ausência de token vira 401 explícito abaixo.
security_optional = HTTPBearer(auto_error=False)

FORBIDDEN_DETAIL = "Forbidden: insufficient permissions"

_TENANT_KEYS = ("condominium_id", "condominiumId")
_OWNER_KEYS = ("user_id", "userId")
_PROPERTY_KEYS = ("property_id", "propertyId")


def _credentials_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Obtém o usuário atual a partir do token JWT.

    Args:
        credentials: Credenciais Bearer do header
        db: Sessão assíncrona do banco

    Returns:
        User: Usuário autenticado e ativo

    Raises:
        HTTPException: 401 se token ausente/inválido ou usuário inativo
    """
    if not credentials:
        raise _credentials_exception("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise _credentials_exception("Could not validate credentials")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _credentials_exception("Invalid token payload")

    result = await db.execute(
        select(User).where(User.id == user_id, User.active_clause())
    )
    user = result.scalar_one_or_none()
    if not user:
        raise _credentials_exception("User not found or inactive")
    return user


def get_permission_service(db: AsyncSession = Depends(get_db)) -> PermissionService:
    return PermissionService(db)


def _first_value(sources: list[dict[str, Any]], keys: tuple[str, ...]) -> Optional[str]:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value not in (None, ""):
                return str(value)
    return None


async def _json_body(request: Request) -> dict[str, Any]:
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return {}
    if "application/json" not in request.headers.get("content-type", ""):
        return {}
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def extract_permission_context(request: Request) -> PermissionContext:
    """
    Monta o contexto do recurso a partir de path params, corpo JSON e query.

    O condomínio cai para o header ``X-Condominium-ID`` quando não vem na
    requisição.
    """
    sources = [
        dict(request.path_params),
        await _json_body(request),
        dict(request.query_params),
    ]
    tenant_id = _first_value(sources, _TENANT_KEYS) or await get_condominium_id(request)
    return PermissionContext(
        tenant_id=tenant_id,
        resource_owner_id=_first_value(sources, _OWNER_KEYS),
        property_id=_first_value(sources, _PROPERTY_KEYS),
    )


def require_module(module_code: str) -> Callable:
    """
    Dependency factory que exige acesso ao módulo.
    """
    if not module_code or ":" in module_code:
        raise ValueError(f"Invalid module code: {module_code!r}")

    async def _checker(
        current_user: User = Depends(get_current_user),
        permission_service: PermissionService = Depends(get_permission_service),
    ) -> User:
        if current_user.is_super_admin:
            return current_user

        if not await permission_service.has_module_access(current_user.id, module_code):
            logger.warning(
                "permission_denied",
                kind="module",
                module_code=module_code,
                user_id=str(current_user.id),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=FORBIDDEN_DETAIL,
            )
        return current_user

    return _checker


def require_permission(permission_key: str, check_ownership: bool = False) -> Callable:
    """
    Dependency factory para validação de ``modulo:acao`` com escopo.

    Com ``check_ownership`` a rota recebe ``request.state.check_ownership = True``
    e deve filtrar os registros do próprio usuário.
    """
    key = PermissionKey.parse(permission_key)
    if key is None:
        raise ValueError(f"Invalid permission key: {permission_key!r}")

    async def _checker(
        request: Request,
        current_user: User = Depends(get_current_user),
        permission_service: PermissionService = Depends(get_permission_service),
    ) -> User:
        if current_user.is_super_admin:
            return current_user

        context = await extract_permission_context(request)
        if not await permission_service.has_permission(current_user.id, key, context):
            logger.warning(
                "permission_denied",
                kind="permission",
                permission=str(key),
                user_id=str(current_user.id),
                condominium_id=context.tenant_id,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=FORBIDDEN_DETAIL,
            )

        if check_ownership:
            request.state.check_ownership = True
        return current_user

    return _checker


def require_super_admin() -> Callable:
    """
    Dependency factory para rotas administrativas.
    """

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.is_super_admin:
            logger.warning(
                "permission_denied",
                kind="super_admin",
                user_id=str(current_user.id),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=FORBIDDEN_DETAIL,
            )
        return current_user

    return _checker
