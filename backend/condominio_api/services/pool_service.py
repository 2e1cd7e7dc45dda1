"""
Serviço de Pools de usuários.

Leitura: quais pools um usuário integra e o que cada pool concede.
Escrita: administração de pools, membros e concessões do pool. Toda mutação
invalida o cache de permissões dos membros ativos no momento da operação.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from condominio_api.core.exceptions import (
    AlreadyGrantedException,
    ConflictException,
    NotFoundException,
    PreconditionFailedException,
)
from condominio_api.core.logging import get_logger
from condominio_api.core.permissions import (
    PermissionContext,
    Scope,
    normalize_scope_id,
    scope_matches,
    validate_scope_id,
)
from condominio_api.db.models import (
    Module,
    ModulePermission,
    Pool,
    PoolMember,
    PoolModule,
    PoolPermission,
    User,
)
from condominio_api.services.grant_filters import (
    live_grant_clause,
    scope_id_clause,
    utcnow,
)
from condominio_api.services.permissions_cache import (
    PermissionsCache,
    get_permissions_cache,
)


logger = get_logger(__name__)


class PoolService:
    """Pools planos: um nível de associação usuário → pool → concessões."""

    def __init__(self, db: AsyncSession, cache: Optional[PermissionsCache] = None):
        self.db = db
        self.cache = cache or get_permissions_cache()

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------

    def _member_pools_subquery(self, user_id: uuid.UUID):
        return (
            select(Pool.id)
            .join(PoolMember, PoolMember.pool_id == Pool.id)
            .where(
                PoolMember.user_id == user_id,
                PoolMember.is_active.is_(True),
                Pool.active_clause(),
            )
        )

    async def get_user_pools(self, user_id: uuid.UUID) -> list[Pool]:
        result = await self.db.execute(
            select(Pool)
            .where(Pool.id.in_(self._member_pools_subquery(user_id)))
            .order_by(Pool.name)
        )
        return list(result.scalars().all())

    async def get_pool_modules(self, pool_id: uuid.UUID) -> list[PoolModule]:
        now = utcnow()
        result = await self.db.execute(
            select(PoolModule)
            .join(Module, Module.id == PoolModule.module_id)
            .options(selectinload(PoolModule.module))
            .where(
                PoolModule.pool_id == pool_id,
                live_grant_clause(PoolModule, now),
                Module.active_clause(),
            )
            .order_by(Module.order)
        )
        return list(result.scalars().all())

    async def get_pool_permissions(self, pool_id: uuid.UUID) -> list[PoolPermission]:
        now = utcnow()
        result = await self.db.execute(
            select(PoolPermission)
            .join(ModulePermission, ModulePermission.id == PoolPermission.permission_id)
            .join(Module, Module.id == ModulePermission.module_id)
            .options(
                selectinload(PoolPermission.permission).selectinload(ModulePermission.module)
            )
            .where(
                PoolPermission.pool_id == pool_id,
                live_grant_clause(PoolPermission, now),
                Module.active_clause(),
            )
            .order_by(Module.order, ModulePermission.code)
        )
        return list(result.scalars().all())

    async def get_active_member_ids(self, pool_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(PoolMember.user_id).where(
                PoolMember.pool_id == pool_id,
                PoolMember.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def list_pool_module_grants(
        self,
        user_id: uuid.UUID,
        module_code: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Módulos que o usuário recebe pelos pools, com pool de origem e expiração."""
        now = utcnow()
        query = (
            select(Module.code, PoolModule.expires_at, Pool.id, Pool.name)
            .join(PoolModule, PoolModule.module_id == Module.id)
            .join(Pool, Pool.id == PoolModule.pool_id)
            .where(
                Pool.id.in_(self._member_pools_subquery(user_id)),
                live_grant_clause(PoolModule, now),
                Module.active_clause(),
            )
            .order_by(Module.order, Pool.name)
        )
        if module_code is not None:
            query = query.where(Module.code == module_code)

        result = await self.db.execute(query)
        return [
            {
                "module_code": code,
                "expires_at": expires_at,
                "pool_id": pool_id,
                "pool_name": pool_name,
            }
            for code, expires_at, pool_id, pool_name in result.all()
        ]

    async def list_pool_permission_grants(
        self,
        user_id: uuid.UUID,
        module_code: Optional[str] = None,
        action: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Permissões granulares herdadas pelos pools ativos do usuário."""
        now = utcnow()
        query = (
            select(
                Module.code,
                ModulePermission.code,
                PoolPermission.scope,
                PoolPermission.scope_id,
                PoolPermission.expires_at,
                Pool.id,
                Pool.name,
            )
            .join(ModulePermission, ModulePermission.id == PoolPermission.permission_id)
            .join(Module, Module.id == ModulePermission.module_id)
            .join(Pool, Pool.id == PoolPermission.pool_id)
            .where(
                Pool.id.in_(self._member_pools_subquery(user_id)),
                live_grant_clause(PoolPermission, now),
                Module.active_clause(),
            )
            .order_by(Module.order, ModulePermission.code, Pool.name)
        )
        if module_code is not None:
            query = query.where(Module.code == module_code)
        if action is not None:
            query = query.where(ModulePermission.code == action)

        result = await self.db.execute(query)
        return [
            {
                "module_code": mod_code,
                "code": perm_code,
                "scope": scope,
                "scope_id": scope_id,
                "expires_at": expires_at,
                "pool_id": pool_id,
                "pool_name": pool_name,
            }
            for mod_code, perm_code, scope, scope_id, expires_at, pool_id, pool_name in result.all()
        ]

    async def has_module_access_via_pool(self, user_id: uuid.UUID, module_code: str) -> bool:
        return bool(await self.list_pool_module_grants(user_id, module_code))

    async def has_permission_via_pool(
        self,
        user_id: uuid.UUID,
        module_code: str,
        action: str,
        context: Optional[PermissionContext] = None,
    ) -> bool:
        grants = await self.list_pool_permission_grants(user_id, module_code, action)
        return any(
            scope_matches(grant["scope"], grant["scope_id"], context) for grant in grants
        )

    # ------------------------------------------------------------------
    # Administração
    # ------------------------------------------------------------------

    async def _get_pool_or_404(self, pool_id: uuid.UUID) -> Pool:
        result = await self.db.execute(
            select(Pool).where(Pool.id == pool_id, Pool.deleted_at.is_(None))
        )
        pool = result.scalar_one_or_none()
        if pool is None:
            raise NotFoundException("Pool não encontrado", details={"pool_id": str(pool_id)})
        return pool

    async def _invalidate_members(self, member_ids: list[uuid.UUID]) -> None:
        if member_ids:
            self.cache.invalidate_many(member_ids)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        query = select(Pool.id).where(func.lower(Pool.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.where(Pool.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictException(
                "Já existe um pool com este nome",
                details={"name": name},
            )

    async def list_pools(self) -> list[dict[str, Any]]:
        """Pools não removidos com a contagem de membros ativos."""
        member_count = (
            select(func.count(PoolMember.id))
            .where(PoolMember.pool_id == Pool.id, PoolMember.is_active.is_(True))
            .correlate(Pool)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(Pool, member_count)
            .where(Pool.deleted_at.is_(None))
            .order_by(Pool.name)
        )
        return [{"pool": pool, "member_count": count} for pool, count in result.all()]

    async def get_pool(self, pool_id: uuid.UUID) -> dict[str, Any]:
        """Pool com membros ativos, módulos e permissões concedidos."""
        pool = await self._get_pool_or_404(pool_id)
        members_result = await self.db.execute(
            select(User)
            .join(PoolMember, PoolMember.user_id == User.id)
            .where(PoolMember.pool_id == pool_id, PoolMember.is_active.is_(True))
            .order_by(User.email)
        )
        return {
            "pool": pool,
            "members": list(members_result.scalars().all()),
            "modules": await self.get_pool_modules(pool_id),
            "permissions": await self.get_pool_permissions(pool_id),
        }

    async def create(
        self,
        admin_id: uuid.UUID,
        name: str,
        description: Optional[str] = None,
    ) -> Pool:
        await self._ensure_unique_name(name)
        pool = Pool(
            name=name.strip(),
            description=description,
            is_active=True,
            created_by=admin_id,
        )
        self.db.add(pool)
        await self._commit()
        await self.db.refresh(pool)

        logger.info("pool_created", pool_id=str(pool.id), name=pool.name, admin_id=str(admin_id))
        return pool

    async def update(
        self,
        pool_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Pool:
        pool = await self._get_pool_or_404(pool_id)
        if name is not None and name.strip() != pool.name:
            await self._ensure_unique_name(name, exclude_id=pool.id)
            pool.name = name.strip()
        if description is not None:
            pool.description = description

        activity_changed = is_active is not None and is_active != pool.is_active
        if activity_changed:
            pool.is_active = is_active

        member_ids = await self.get_active_member_ids(pool_id) if activity_changed else []
        await self._commit()
        await self.db.refresh(pool)
        await self._invalidate_members(member_ids)
        return pool

    async def deactivate(self, pool_id: uuid.UUID) -> Pool:
        pool = await self.update(pool_id, is_active=False)
        logger.info("pool_deactivated", pool_id=str(pool_id))
        return pool

    async def add_member(
        self,
        admin_id: uuid.UUID,
        pool_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> PoolMember:
        await self._get_pool_or_404(pool_id)
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundException("Usuário não encontrado", details={"user_id": str(user_id)})

        result = await self.db.execute(
            select(PoolMember).where(
                PoolMember.pool_id == pool_id,
                PoolMember.user_id == user_id,
            )
        )
        member = result.scalar_one_or_none()
        if member is not None and member.is_active:
            raise ConflictException(
                "Usuário já é membro do pool",
                code="already_member",
                details={"pool_id": str(pool_id), "user_id": str(user_id)},
            )

        if member is None:
            member = PoolMember(pool_id=pool_id, user_id=user_id)
            self.db.add(member)
        member.is_active = True
        member.added_by = admin_id
        member.added_at = utcnow()

        await self._commit()
        await self.db.refresh(member)
        self.cache.invalidate(user_id)

        logger.info(
            "pool_member_added",
            pool_id=str(pool_id),
            user_id=str(user_id),
            admin_id=str(admin_id),
        )
        return member

    async def remove_member(self, pool_id: uuid.UUID, user_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(PoolMember).where(
                PoolMember.pool_id == pool_id,
                PoolMember.user_id == user_id,
                PoolMember.is_active.is_(True),
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundException(
                "Usuário não é membro do pool",
                details={"pool_id": str(pool_id), "user_id": str(user_id)},
            )

        member.is_active = False
        await self._commit()
        self.cache.invalidate(user_id)
        logger.info("pool_member_removed", pool_id=str(pool_id), user_id=str(user_id))

    async def grant_module_access(
        self,
        admin_id: uuid.UUID,
        pool_id: uuid.UUID,
        module_id: uuid.UUID,
        expires_at: Optional[datetime] = None,
    ) -> PoolModule:
        await self._get_pool_or_404(pool_id)
        module = await self.db.get(Module, module_id)
        if module is None or not module.is_active or module.deleted_at is not None:
            raise NotFoundException(
                "Módulo não encontrado ou inativo",
                details={"module_id": str(module_id)},
            )

        result = await self.db.execute(
            select(PoolModule).where(
                PoolModule.pool_id == pool_id,
                PoolModule.module_id == module_id,
            )
        )
        grant = result.scalar_one_or_none()
        if grant is not None and grant.is_active:
            raise AlreadyGrantedException(
                "O pool já possui acesso a este módulo",
                details={"pool_id": str(pool_id), "module_code": module.code},
            )

        if grant is None:
            grant = PoolModule(pool_id=pool_id, module_id=module_id)
            self.db.add(grant)
        grant.is_active = True
        grant.granted_by = admin_id
        grant.granted_at = utcnow()
        grant.expires_at = expires_at

        member_ids = await self.get_active_member_ids(pool_id)
        await self._commit()
        await self.db.refresh(grant)
        await self._invalidate_members(member_ids)

        logger.info(
            "pool_module_access_granted",
            pool_id=str(pool_id),
            module_code=module.code,
            admin_id=str(admin_id),
        )
        return grant

    async def revoke_module_access(
        self,
        admin_id: uuid.UUID,
        pool_id: uuid.UUID,
        module_id: uuid.UUID,
    ) -> None:
        result = await self.db.execute(
            select(PoolModule).where(
                PoolModule.pool_id == pool_id,
                PoolModule.module_id == module_id,
                PoolModule.is_active.is_(True),
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFoundException(
                "O pool não possui acesso a este módulo",
                details={"pool_id": str(pool_id), "module_id": str(module_id)},
            )
        grant.is_active = False

        cascade_result = await self.db.execute(
            select(PoolPermission)
            .join(ModulePermission, ModulePermission.id == PoolPermission.permission_id)
            .where(
                PoolPermission.pool_id == pool_id,
                PoolPermission.is_active.is_(True),
                ModulePermission.module_id == module_id,
            )
        )
        cascaded = cascade_result.scalars().all()
        for permission_grant in cascaded:
            permission_grant.is_active = False

        member_ids = await self.get_active_member_ids(pool_id)
        await self._commit()
        await self._invalidate_members(member_ids)

        logger.info(
            "pool_module_access_revoked",
            pool_id=str(pool_id),
            module_id=str(module_id),
            cascaded_permissions=len(cascaded),
            admin_id=str(admin_id),
        )

    async def grant_permission(
        self,
        admin_id: uuid.UUID,
        pool_id: uuid.UUID,
        module_permission_id: uuid.UUID,
        scope: Scope | str,
        scope_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> PoolPermission:
        scope = Scope(scope)
        scope_id = normalize_scope_id(scope_id)
        await self._get_pool_or_404(pool_id)

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

        scope_error = validate_scope_id(scope, scope_id)
        if scope_error:
            raise PreconditionFailedException(scope_error, details={"scope": scope.value})

        module_grant = await self.db.execute(
            select(PoolModule.id).where(
                PoolModule.pool_id == pool_id,
                PoolModule.module_id == permission.module_id,
                live_grant_clause(PoolModule, utcnow()),
            )
        )
        if module_grant.first() is None:
            raise PreconditionFailedException(
                "O pool não possui acesso ao módulo desta permissão",
                details={"pool_id": str(pool_id), "module_code": permission.module.code},
            )

        existing = await self.db.execute(
            select(PoolPermission).where(
                PoolPermission.pool_id == pool_id,
                PoolPermission.permission_id == module_permission_id,
                PoolPermission.scope == scope.value,
                scope_id_clause(PoolPermission.scope_id, scope_id),
            )
        )
        grant = existing.scalar_one_or_none()
        if grant is not None and grant.is_active:
            raise AlreadyGrantedException(
                "O pool já possui esta permissão",
                details={
                    "pool_id": str(pool_id),
                    "permission": f"{permission.module.code}:{permission.code}",
                    "scope": scope.value,
                    "scope_id": scope_id,
                },
            )

        if grant is None:
            grant = PoolPermission(
                pool_id=pool_id,
                permission_id=module_permission_id,
                scope=scope.value,
                scope_id=scope_id,
            )
            self.db.add(grant)
        grant.is_active = True
        grant.granted_by = admin_id
        grant.granted_at = utcnow()
        grant.expires_at = expires_at

        member_ids = await self.get_active_member_ids(pool_id)
        await self._commit()
        await self.db.refresh(grant)
        await self._invalidate_members(member_ids)

        logger.info(
            "pool_permission_granted",
            pool_id=str(pool_id),
            permission=f"{permission.module.code}:{permission.code}",
            scope=scope.value,
            scope_id=scope_id,
            admin_id=str(admin_id),
        )
        return grant

    async def revoke_permission(
        self,
        admin_id: uuid.UUID,
        pool_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> None:
        """Revoga a concessão ``permission_id`` (id da linha de ``pool_permissions``)."""
        result = await self.db.execute(
            select(PoolPermission).where(
                PoolPermission.id == permission_id,
                PoolPermission.pool_id == pool_id,
                PoolPermission.is_active.is_(True),
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFoundException(
                "Permissão do pool não encontrada",
                details={"pool_id": str(pool_id), "permission_id": str(permission_id)},
            )
        grant.is_active = False

        member_ids = await self.get_active_member_ids(pool_id)
        await self._commit()
        await self._invalidate_members(member_ids)

        logger.info(
            "pool_permission_revoked",
            pool_id=str(pool_id),
            permission_id=str(permission_id),
            admin_id=str(admin_id),
        )
