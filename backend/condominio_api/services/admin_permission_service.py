"""
Administração de concessões diretas a usuários.

Concede e revoga acesso a módulos e permissões granulares. Revogar nunca apaga
a linha: ``is_active`` vai para False e conceder a mesma tupla de novo reativa
a linha existente.

Regra de produto: em módulos CRUD, conceder ``create``, ``update`` ou
``delete`` garante também ``read`` com o mesmo escopo.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from condominio_api.core.exceptions import (
    AlreadyGrantedException,
    NotFoundException,
    PreconditionFailedException,
)
from condominio_api.core.logging import get_logger
from condominio_api.core.permissions import (
    MUTATING_CRUD_ACTIONS,
    Action,
    Scope,
    normalize_scope_id,
    validate_scope_id,
)
from condominio_api.db.models import (
    Module,
    ModulePermission,
    Pool,
    PoolMember,
    PoolModule,
    User,
    UserModule,
    UserPermission,
)
from condominio_api.services.grant_filters import live_grant_clause, scope_id_clause, utcnow
from condominio_api.services.permissions_cache import (
    PermissionsCache,
    get_permissions_cache,
)
from condominio_api.services.pool_service import PoolService


logger = get_logger(__name__)


class AdminPermissionService:
    """Serviço de administração de permissões de usuários."""

    def __init__(self, db: AsyncSession, cache: Optional[PermissionsCache] = None):
        self.db = db
        self.cache = cache or get_permissions_cache()
        self.pools = PoolService(db, cache=self.cache)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _get_user_or_404(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None or user.deleted_at is not None:
            raise NotFoundException("Usuário não encontrado", details={"user_id": str(user_id)})
        return user

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    async def list_modules(self) -> list[Module]:
        result = await self.db.execute(
            select(Module)
            .options(selectinload(Module.permissions))
            .where(Module.active_clause())
            .order_by(Module.order, Module.code)
        )
        return list(result.scalars().all())

    async def get_module_by_code(self, code: str) -> Module:
        result = await self.db.execute(
            select(Module)
            .options(selectinload(Module.permissions))
            .where(Module.code == code, Module.deleted_at.is_(None))
        )
        module = result.scalar_one_or_none()
        if module is None:
            raise NotFoundException("Módulo não encontrado", details={"module_code": code})
        return module

    async def get_module_permissions(self, code: str) -> list[ModulePermission]:
        module = await self.get_module_by_code(code)
        return list(module.permissions)

    async def get_user_modules(self, user_id: uuid.UUID) -> list[UserModule]:
        """Acessos diretos a módulo, ativos e não expirados."""
        result = await self.db.execute(
            select(UserModule)
            .join(Module, Module.id == UserModule.module_id)
            .options(selectinload(UserModule.module))
            .where(
                UserModule.user_id == user_id,
                live_grant_clause(UserModule, utcnow()),
                Module.active_clause(),
            )
            .order_by(Module.order)
        )
        return list(result.scalars().all())

    async def get_user_effective_permissions(self, user_id: uuid.UUID) -> dict[str, Any]:
        """Visão consolidada do que o usuário possui e de onde vem cada concessão."""
        user = await self._get_user_or_404(user_id)
        now = utcnow()

        modules = [
            {
                "module_id": grant.module.id,
                "module_code": grant.module.code,
                "module_name": grant.module.name,
                "source": "direct",
                "pool_name": None,
                "expires_at": grant.expires_at,
            }
            for grant in await self.get_user_modules(user_id)
        ]
        for grant in await self.pools.list_pool_module_grants(user_id):
            modules.append(
                {
                    "module_id": None,
                    "module_code": grant["module_code"],
                    "module_name": None,
                    "source": "pool",
                    "pool_name": grant["pool_name"],
                    "expires_at": grant["expires_at"],
                }
            )

        direct_result = await self.db.execute(
            select(UserPermission, ModulePermission.code, Module.code)
            .join(ModulePermission, ModulePermission.id == UserPermission.permission_id)
            .join(Module, Module.id == ModulePermission.module_id)
            .where(
                UserPermission.user_id == user_id,
                live_grant_clause(UserPermission, now),
                Module.active_clause(),
            )
            .order_by(Module.order, ModulePermission.code)
        )
        permissions = [
            {
                "id": grant.id,
                "module_code": module_code,
                "code": code,
                "scope": grant.scope,
                "scope_id": grant.scope_id,
                "source": "direct",
                "pool_name": None,
                "expires_at": grant.expires_at,
            }
            for grant, code, module_code in direct_result.all()
        ]
        for grant in await self.pools.list_pool_permission_grants(user_id):
            permissions.append(
                {
                    "id": None,
                    "module_code": grant["module_code"],
                    "code": grant["code"],
                    "scope": grant["scope"],
                    "scope_id": grant["scope_id"],
                    "source": "pool",
                    "pool_name": grant["pool_name"],
                    "expires_at": grant["expires_at"],
                }
            )

        return {
            "user": user,
            "is_super_admin": bool(user.is_super_admin),
            "modules": modules,
            "permissions": permissions,
        }

    async def get_users_by_module(self, code: str) -> list[dict[str, Any]]:
        """Usuários com acesso ao módulo, diretamente ou por pool."""
        module = await self.get_module_by_code(code)
        now = utcnow()

        direct = await self.db.execute(
            select(User)
            .join(UserModule, UserModule.user_id == User.id)
            .where(
                UserModule.module_id == module.id,
                live_grant_clause(UserModule, now),
                User.active_clause(),
            )
            .order_by(User.email)
        )
        users = [
            {"user": user, "source": "direct", "pool_name": None}
            for user in direct.scalars().all()
        ]

        via_pool = await self.db.execute(
            select(User, Pool.name)
            .join(PoolMember, PoolMember.user_id == User.id)
            .join(Pool, Pool.id == PoolMember.pool_id)
            .join(PoolModule, PoolModule.pool_id == Pool.id)
            .where(
                PoolModule.module_id == module.id,
                live_grant_clause(PoolModule, now),
                PoolMember.is_active.is_(True),
                Pool.active_clause(),
                User.active_clause(),
            )
            .order_by(User.email, Pool.name)
        )
        users.extend(
            {"user": user, "source": "pool", "pool_name": pool_name}
            for user, pool_name in via_pool.all()
        )
        return users

    async def search_users(
        self,
        search: Optional[str] = None,
        module_code: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """Busca paginada de usuários por nome/email, opcionalmente com acesso direto a um módulo."""
        query = select(User).where(User.deleted_at.is_(None))
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        if module_code:
            query = query.where(
                User.id.in_(
                    select(UserModule.user_id)
                    .join(Module, Module.id == UserModule.module_id)
                    .where(
                        Module.code == module_code,
                        live_grant_clause(UserModule, utcnow()),
                    )
                )
            )

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()

        page = max(page, 1)
        limit = max(1, min(limit, 100))
        result = await self.db.execute(
            query.order_by(User.email).offset((page - 1) * limit).limit(limit)
        )
        return {
            "items": list(result.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
        }

    # ------------------------------------------------------------------
    # Acesso a módulos
    # ------------------------------------------------------------------

    async def grant_module_access(
        self,
        admin_id: uuid.UUID,
        user_id: uuid.UUID,
        module_id: uuid.UUID,
        expires_at: Optional[datetime] = None,
    ) -> UserModule:
        await self._get_user_or_404(user_id)
        module = await self.db.get(Module, module_id)
        if module is None or not module.is_active or module.deleted_at is not None:
            raise NotFoundException(
                "Módulo não encontrado ou inativo",
                details={"module_id": str(module_id)},
            )

        result = await self.db.execute(
            select(UserModule).where(
                UserModule.user_id == user_id,
                UserModule.module_id == module_id,
            )
        )
        grant = result.scalar_one_or_none()
        if grant is not None and grant.is_active:
            raise AlreadyGrantedException(
                "O usuário já possui acesso a este módulo",
                details={"user_id": str(user_id), "module_code": module.code},
            )

        if grant is None:
            grant = UserModule(user_id=user_id, module_id=module_id)
            self.db.add(grant)
        grant.is_active = True
        grant.granted_by = admin_id
        grant.granted_at = utcnow()
        grant.expires_at = expires_at

        await self._commit()
        await self.db.refresh(grant)
        self.cache.invalidate(user_id)

        logger.info(
            "module_access_granted",
            user_id=str(user_id),
            module_code=module.code,
            admin_id=str(admin_id),
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return grant

    async def revoke_module_access(
        self,
        admin_id: uuid.UUID,
        user_id: uuid.UUID,
        module_id: uuid.UUID,
    ) -> None:
        """Revoga o acesso direto e, em cascata, as permissões diretas do módulo.

        Concessões herdadas de pools não são afetadas.
        """
        result = await self.db.execute(
            select(UserModule).where(
                UserModule.user_id == user_id,
                UserModule.module_id == module_id,
                UserModule.is_active.is_(True),
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFoundException(
                "O usuário não possui acesso a este módulo",
                details={"user_id": str(user_id), "module_id": str(module_id)},
            )
        grant.is_active = False

        cascade_result = await self.db.execute(
            select(UserPermission)
            .join(ModulePermission, ModulePermission.id == UserPermission.permission_id)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.is_active.is_(True),
                ModulePermission.module_id == module_id,
            )
        )
        cascaded = cascade_result.scalars().all()
        for permission_grant in cascaded:
            permission_grant.is_active = False

        await self._commit()
        self.cache.invalidate(user_id)

        logger.info(
            "module_access_revoked",
            user_id=str(user_id),
            module_id=str(module_id),
            cascaded_permissions=len(cascaded),
            admin_id=str(admin_id),
        )

    # ------------------------------------------------------------------
    # Permissões granulares
    # ------------------------------------------------------------------

    async def _has_module_access(self, user_id: uuid.UUID, module: Module) -> bool:
        direct = await self.db.execute(
            select(UserModule.id).where(
                UserModule.user_id == user_id,
                UserModule.module_id == module.id,
                live_grant_clause(UserModule, utcnow()),
            )
        )
        if direct.first() is not None:
            return True
        return await self.pools.has_module_access_via_pool(user_id, module.code)

    async def _find_user_permission(
        self,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
        scope: Scope,
        scope_id: Optional[str],
    ) -> Optional[UserPermission]:
        result = await self.db.execute(
            select(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
                UserPermission.scope == scope.value,
                scope_id_clause(UserPermission.scope_id, scope_id),
            )
        )
        return result.scalar_one_or_none()

    async def _ensure_read_companion(
        self,
        admin_id: uuid.UUID,
        user_id: uuid.UUID,
        module: Module,
        scope: Scope,
        scope_id: Optional[str],
        expires_at: Optional[datetime],
    ) -> Optional[UserPermission]:
        result = await self.db.execute(
            select(ModulePermission).where(
                ModulePermission.module_id == module.id,
                ModulePermission.code == Action.READ.value,
            )
        )
        read_permission = result.scalar_one_or_none()
        if read_permission is None:
            logger.warning(
                "read_permission_missing",
                module_code=module.code,
                user_id=str(user_id),
            )
            return None

        companion = await self._find_user_permission(
            user_id, read_permission.id, scope, scope_id
        )
        if companion is not None and companion.is_active:
            return None

        if companion is None:
            companion = UserPermission(
                user_id=user_id,
                permission_id=read_permission.id,
                scope=scope.value,
                scope_id=scope_id,
            )
            self.db.add(companion)
        companion.is_active = True
        companion.granted_by = admin_id
        companion.granted_at = utcnow()
        companion.expires_at = expires_at
        return companion

    async def grant_permission(
        self,
        admin_id: uuid.UUID,
        user_id: uuid.UUID,
        module_permission_id: uuid.UUID,
        scope: Scope | str,
        scope_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserPermission:
        """
        Concede permissão granular com escopo.

        Raises:
            NotFoundException: usuário ou permissão inexistente
            PreconditionFailedException: scope_id incoerente ou sem acesso ao módulo
            AlreadyGrantedException: a mesma concessão já está ativa
        """
        scope = Scope(scope)
        scope_id = normalize_scope_id(scope_id)
        await self._get_user_or_404(user_id)

        result = await self.db.execute(
            select(ModulePermission)
            .options(selectinload(ModulePermission.module))
            .where(ModulePermission.id == module_permission_id)
        )
        permission = result.scalar_one_or_none()
        if permission is None:
            raise NotFoundException(
                "Permissão não encontrada",
                details={"permission_id": str(module_permission_id)},
            )
        module = permission.module
        permission_label = f"{module.code}:{permission.code}"

        scope_error = validate_scope_id(scope, scope_id)
        if scope_error:
            raise PreconditionFailedException(scope_error, details={"scope": scope.value})

        if not await self._has_module_access(user_id, module):
            raise PreconditionFailedException(
                "O usuário não possui acesso ao módulo desta permissão",
                details={"user_id": str(user_id), "module_code": module.code},
            )

        grant = await self._find_user_permission(user_id, permission.id, scope, scope_id)
        if grant is not None and grant.is_active:
            raise AlreadyGrantedException(
                "O usuário já possui esta permissão",
                details={
                    "user_id": str(user_id),
                    "permission": permission_label,
                    "scope": scope.value,
                    "scope_id": scope_id,
                },
            )

        try:
            if grant is None:
                grant = UserPermission(
                    user_id=user_id,
                    permission_id=permission.id,
                    scope=scope.value,
                    scope_id=scope_id,
                )
                self.db.add(grant)
            grant.is_active = True
            grant.granted_by = admin_id
            grant.granted_at = utcnow()
            grant.expires_at = expires_at

            companion = None
            if module.is_crud and permission.code in MUTATING_CRUD_ACTIONS:
                companion = await self._ensure_read_companion(
                    admin_id, user_id, module, scope, scope_id, expires_at
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(grant)
        self.cache.invalidate(user_id)

        logger.info(
            "permission_granted",
            user_id=str(user_id),
            permission=permission_label,
            scope=scope.value,
            scope_id=scope_id,
            admin_id=str(admin_id),
            read_auto_granted=companion is not None,
        )
        return grant

    async def revoke_permission(
        self,
        admin_id: uuid.UUID,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> None:
        """Revoga exatamente a concessão ``permission_id``; não há cascata para ``read``."""
        result = await self.db.execute(
            select(UserPermission).where(
                UserPermission.id == permission_id,
                UserPermission.user_id == user_id,
                UserPermission.is_active.is_(True),
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFoundException(
                "Permissão do usuário não encontrada",
                details={"user_id": str(user_id), "permission_id": str(permission_id)},
            )
        grant.is_active = False

        await self._commit()
        self.cache.invalidate(user_id)

        logger.info(
            "permission_revoked",
            user_id=str(user_id),
            permission_id=str(permission_id),
            admin_id=str(admin_id),
        )
