"""
Resolução de permissões.

Decide se um usuário pode acessar um módulo ou executar ``modulo:acao`` em um
contexto. Ordem: super-admin → acesso ao módulo (direto ∪ pool) → permissão
granular (direta ∪ pool) → verificação de escopo.

As decisões saem de um snapshot por usuário (:class:`CachedUserAccess`)
guardado no cache de permissões.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from condominio_api.core.logging import get_logger
from condominio_api.core.metrics import record_permission_check
from condominio_api.core.permissions import (
    PermissionContext,
    PermissionKey,
    Scope,
    scope_matches,
)
from condominio_api.db.models import Module, ModulePermission, User, UserModule, UserPermission
from condominio_api.services.grant_filters import earliest_expiry, live_grant_clause, utcnow
from condominio_api.services.permissions_cache import (
    CachedUserAccess,
    PermissionsCache,
    ScopeGrant,
    get_permissions_cache,
)
from condominio_api.services.pool_service import PoolService


logger = get_logger(__name__)


class PermissionService:
    """Resolve acesso a módulos e permissões granulares."""

    def __init__(self, db: AsyncSession, cache: Optional[PermissionsCache] = None):
        self.db = db
        self.cache = cache or get_permissions_cache()
        self.pools = PoolService(db, cache=self.cache)

    async def is_super_admin(self, user_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(User.is_super_admin).where(User.id == user_id, User.active_clause())
        )
        return bool(result.scalar_one_or_none())

    async def get_user_access(self, user_id: uuid.UUID) -> CachedUserAccess:
        """Snapshot de acesso do usuário, do cache ou montado a partir do banco."""
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        access = await self._load_user_access(user_id)
        self.cache.set(user_id, access)
        return access

    async def _load_user_access(self, user_id: uuid.UUID) -> CachedUserAccess:
        user_result = await self.db.execute(
            select(User.is_super_admin).where(User.id == user_id, User.active_clause())
        )
        is_super_admin = user_result.scalar_one_or_none()
        if is_super_admin is None:
            return CachedUserAccess()

        if is_super_admin:
            return await self._load_super_admin_access()

        now = utcnow()
        expiries = []

        direct_modules = await self.db.execute(
            select(Module.code, UserModule.expires_at)
            .join(UserModule, UserModule.module_id == Module.id)
            .where(
                UserModule.user_id == user_id,
                live_grant_clause(UserModule, now),
                Module.active_clause(),
            )
        )
        module_codes = set()
        for code, expires_at in direct_modules.all():
            module_codes.add(code)
            expiries.append(expires_at)

        for grant in await self.pools.list_pool_module_grants(user_id):
            module_codes.add(grant["module_code"])
            expiries.append(grant["expires_at"])

        direct_permissions = await self.db.execute(
            select(
                Module.code,
                ModulePermission.code,
                UserPermission.scope,
                UserPermission.scope_id,
                UserPermission.expires_at,
            )
            .join(ModulePermission, ModulePermission.id == UserPermission.permission_id)
            .join(Module, Module.id == ModulePermission.module_id)
            .where(
                UserPermission.user_id == user_id,
                live_grant_clause(UserPermission, now),
                Module.active_clause(),
            )
            .order_by(Module.order, ModulePermission.code)
        )

        # direto primeiro: em tuplas idênticas a concessão direta prevalece
        permissions: dict[str, OrderedDict[tuple[str, Optional[str]], ScopeGrant]] = {}
        for module_code, action, scope, scope_id, expires_at in direct_permissions.all():
            key = f"{module_code}:{action}"
            grants = permissions.setdefault(key, OrderedDict())
            grants.setdefault((scope, scope_id), ScopeGrant(scope, scope_id, "direct"))
            expiries.append(expires_at)

        for grant in await self.pools.list_pool_permission_grants(user_id):
            key = f"{grant['module_code']}:{grant['code']}"
            grants = permissions.setdefault(key, OrderedDict())
            grants.setdefault(
                (grant["scope"], grant["scope_id"]),
                ScopeGrant(grant["scope"], grant["scope_id"], "pool"),
            )
            expiries.append(grant["expires_at"])

        return CachedUserAccess(
            is_super_admin=False,
            module_codes=frozenset(module_codes),
            permissions={key: tuple(grants.values()) for key, grants in permissions.items()},
            refresh_after=earliest_expiry(expiries),
        )

    async def _load_super_admin_access(self) -> CachedUserAccess:
        result = await self.db.execute(
            select(Module.code, ModulePermission.code)
            .join(ModulePermission, ModulePermission.module_id == Module.id, isouter=True)
            .where(Module.active_clause())
        )
        module_codes = set()
        permissions: dict[str, tuple[ScopeGrant, ...]] = {}
        for module_code, action in result.all():
            module_codes.add(module_code)
            if action is not None:
                permissions[f"{module_code}:{action}"] = (ScopeGrant(Scope.ALL.value),)

        return CachedUserAccess(
            is_super_admin=True,
            module_codes=frozenset(module_codes),
            permissions=permissions,
        )

    async def has_module_access(self, user_id: uuid.UUID, module_code: str) -> bool:
        access = await self.get_user_access(user_id)
        allowed = access.is_super_admin or module_code in access.module_codes
        record_permission_check("module", allowed)
        return allowed

    async def has_permission(
        self,
        user_id: uuid.UUID,
        permission_key: str | PermissionKey,
        context: Optional[PermissionContext] = None,
    ) -> bool:
        key = (
            permission_key
            if isinstance(permission_key, PermissionKey)
            else PermissionKey.parse(permission_key)
        )
        if key is None:
            logger.warning(
                "invalid_permission_key",
                permission_key=permission_key,
                user_id=str(user_id),
            )
            record_permission_check("permission", False)
            return False

        access = await self.get_user_access(user_id)
        if access.is_super_admin:
            record_permission_check("permission", True)
            return True

        allowed = key.module_code in access.module_codes and any(
            scope_matches(grant.scope, grant.scope_id, context)
            for grant in access.permissions.get(str(key), ())
        )
        record_permission_check("permission", allowed)
        return allowed

    async def check_module_access(self, user_id: uuid.UUID, module_code: str) -> bool:
        return await self.has_module_access(user_id, module_code)

    async def check_permission(
        self,
        user_id: uuid.UUID,
        permission_key: str,
        context: Optional[PermissionContext] = None,
    ) -> bool:
        return await self.has_permission(user_id, permission_key, context)

    async def get_user_module_codes(self, user_id: uuid.UUID) -> set[str]:
        access = await self.get_user_access(user_id)
        return set(access.module_codes)

    async def get_user_module_permissions(
        self,
        user_id: uuid.UUID,
        module_code: str,
    ) -> list[dict[str, Any]]:
        """Permissões do usuário no módulo, sem duplicatas de (código, escopo, scope_id)."""
        access = await self.get_user_access(user_id)
        if module_code not in access.module_codes:
            return []

        prefix = f"{module_code}:"
        items = []
        for key, grants in access.permissions.items():
            if not key.startswith(prefix):
                continue
            code = key[len(prefix):]
            for grant in grants:
                items.append({"code": code, "scope": grant.scope, "scope_id": grant.scope_id})
        return items

    async def get_modules_with_actions_for_user(
        self,
        user_id: uuid.UUID,
    ) -> list[dict[str, Any]]:
        """Módulos acessíveis com as ações que o usuário possui, na ordem de navegação."""
        access = await self.get_user_access(user_id)
        if not access.module_codes:
            return []

        result = await self.db.execute(
            select(Module)
            .options(selectinload(Module.permissions))
            .where(Module.code.in_(sorted(access.module_codes)), Module.active_clause())
            .order_by(Module.order, Module.code)
        )

        modules = []
        for module in result.scalars().all():
            if access.is_super_admin:
                actions = [permission.code for permission in module.permissions]
            else:
                actions = [
                    permission.code
                    for permission in module.permissions
                    if f"{module.code}:{permission.code}" in access.permissions
                ]
            if not actions:
                continue
            modules.append(
                {
                    "code": module.code,
                    "name": module.name,
                    "icon": module.icon,
                    "type": module.type,
                    "order": module.order,
                    "actions": actions,
                }
            )
        return modules
