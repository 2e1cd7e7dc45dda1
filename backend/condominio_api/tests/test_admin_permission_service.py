"""Testes da administração de concessões diretas (reativação, auto-grant, cascata)."""

from __future__ import annotations

from datetime import timedelta
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from condominio_api.core.exceptions import (
    AlreadyGrantedException,
    ConflictException,
    NotFoundException,
    PreconditionFailedException,
)
from condominio_api.core.permissions import Scope
from condominio_api.db.models import UserModule, UserPermission
from condominio_api.services.admin_permission_service import AdminPermissionService
from condominio_api.services.grant_filters import as_utc, utcnow
from condominio_api.services.permission_service import PermissionService
from condominio_api.services.permissions_cache import CachedUserAccess
from condominio_api.services.pool_service import PoolService
from condominio_api.tests.factories import (
    create_module,
    create_user,
    permission_of,
    seed_catalogue,
)


async def _user_permissions(db, user_id) -> list[UserPermission]:
    result = await db.execute(
        select(UserPermission).where(UserPermission.user_id == user_id)
    )
    return list(result.scalars().all())


@pytest.fixture
def admin_service(db_session, permissions_cache) -> AdminPermissionService:
    return AdminPermissionService(db_session, cache=permissions_cache)


@pytest.mark.asyncio
async def test_grant_module_access_twice_raises_already_granted(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")

    grant = await admin_service.grant_module_access(admin.id, user.id, modules["objetivos"].id)
    assert grant.is_active is True
    assert grant.granted_by == admin.id

    with pytest.raises(AlreadyGrantedException) as exc_info:
        await admin_service.grant_module_access(admin.id, user.id, modules["objetivos"].id)
    assert isinstance(exc_info.value, ConflictException)
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_revoke_then_grant_reactivates_same_row(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    other_admin = await create_user(db_session, "root2@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    module_id = modules["objetivos"].id

    first = await admin_service.grant_module_access(admin.id, user.id, module_id)
    await admin_service.revoke_module_access(admin.id, user.id, module_id)

    expires_at = utcnow() + timedelta(days=30)
    second = await admin_service.grant_module_access(
        other_admin.id, user.id, module_id, expires_at=expires_at
    )

    assert second.id == first.id
    assert second.is_active is True
    assert second.granted_by == other_admin.id
    assert as_utc(second.expires_at) == expires_at

    rows = (
        await db_session.execute(select(UserModule).where(UserModule.user_id == user.id))
    ).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_grant_module_access_validates_user_and_module(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    inactive = await create_module(db_session, "legado", is_active=False)

    with pytest.raises(NotFoundException):
        await admin_service.grant_module_access(admin.id, uuid.uuid4(), modules["objetivos"].id)
    with pytest.raises(NotFoundException):
        await admin_service.grant_module_access(admin.id, user.id, uuid.uuid4())
    with pytest.raises(NotFoundException):
        await admin_service.grant_module_access(admin.id, user.id, inactive.id)


@pytest.mark.asyncio
async def test_revoke_module_access_without_active_grant_is_not_found(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")

    with pytest.raises(NotFoundException):
        await admin_service.revoke_module_access(admin.id, user.id, modules["objetivos"].id)


@pytest.mark.asyncio
async def test_grant_permission_requires_module_access(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")

    with pytest.raises(PreconditionFailedException) as exc_info:
        await admin_service.grant_permission(
            admin.id, user.id, permission_of(modules["objetivos"], "read").id, Scope.ALL
        )
    assert exc_info.value.status_code == 400
    assert await _user_permissions(db_session, user.id) == []


@pytest.mark.asyncio
async def test_grant_permission_accepts_module_access_via_pool(
    db_session, admin_service, permissions_cache
):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    pools = PoolService(db_session, cache=permissions_cache)
    pool = await pools.create(admin.id, "Síndicos")
    await pools.add_member(admin.id, pool.id, user.id)
    await pools.grant_module_access(admin.id, pool.id, modules["reportes"].id)

    grant = await admin_service.grant_permission(
        admin.id, user.id, permission_of(modules["reportes"], "export").id, Scope.ALL
    )
    assert grant.is_active is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "scope, scope_id",
    [
        (Scope.TENANT, None),
        (Scope.TENANT, "   "),
        (Scope.ALL, "condo-1"),
        (Scope.OWN, "condo-1"),
    ],
)
async def test_grant_permission_rejects_inconsistent_scope_id(
    db_session, admin_service, scope, scope_id
):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    await admin_service.grant_module_access(admin.id, user.id, modules["objetivos"].id)

    with pytest.raises(PreconditionFailedException):
        await admin_service.grant_permission(
            admin.id, user.id, permission_of(modules["objetivos"], "read").id, scope, scope_id
        )


@pytest.mark.asyncio
async def test_grant_permission_unknown_permission_is_not_found(db_session, admin_service):
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")

    with pytest.raises(NotFoundException):
        await admin_service.grant_permission(admin.id, user.id, uuid.uuid4(), Scope.ALL)


@pytest.mark.asyncio
async def test_create_on_crud_module_auto_grants_read_with_same_scope(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    expires_at = utcnow() + timedelta(days=7)
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    await admin_service.grant_permission(
        admin.id,
        user.id,
        permission_of(objetivos, "create").id,
        Scope.TENANT,
        "condo-1",
        expires_at=expires_at,
    )

    grants = {
        grant.permission_id: grant for grant in await _user_permissions(db_session, user.id)
    }
    read = grants[permission_of(objetivos, "read").id]
    assert len(grants) == 2
    assert read.is_active is True
    assert read.scope == "tenant"
    assert read.scope_id == "condo-1"
    assert read.granted_by == admin.id
    assert as_utc(read.expires_at) == expires_at


@pytest.mark.asyncio
async def test_auto_grant_reactivates_revoked_read(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    read = await admin_service.grant_permission(
        admin.id, user.id, permission_of(objetivos, "read").id, Scope.ALL
    )
    await admin_service.revoke_permission(admin.id, user.id, read.id)

    await admin_service.grant_permission(
        admin.id, user.id, permission_of(objetivos, "delete").id, Scope.ALL
    )

    await db_session.refresh(read)
    assert read.is_active is True
    assert len(await _user_permissions(db_session, user.id)) == 2


@pytest.mark.asyncio
async def test_auto_grant_leaves_active_read_untouched(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    other_admin = await create_user(db_session, "root2@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    read = await admin_service.grant_permission(
        admin.id, user.id, permission_of(objetivos, "read").id, Scope.OWN
    )
    await admin_service.grant_permission(
        other_admin.id, user.id, permission_of(objetivos, "update").id, Scope.OWN
    )

    await db_session.refresh(read)
    assert read.granted_by == admin.id
    assert read.expires_at is None


@pytest.mark.asyncio
async def test_specialized_module_does_not_auto_grant(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    reportes = modules["reportes"]
    await admin_service.grant_module_access(admin.id, user.id, reportes.id)

    await admin_service.grant_permission(
        admin.id, user.id, permission_of(reportes, "export").id, Scope.ALL
    )

    grants = await _user_permissions(db_session, user.id)
    assert [grant.permission_id for grant in grants] == [permission_of(reportes, "export").id]


@pytest.mark.asyncio
async def test_crud_module_without_read_skips_auto_grant(db_session, admin_service):
    module = await create_module(db_session, "arquivos", actions=("create", "delete"))
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    await admin_service.grant_module_access(admin.id, user.id, module.id)

    grant = await admin_service.grant_permission(
        admin.id, user.id, permission_of(module, "create").id, Scope.ALL
    )

    grants = await _user_permissions(db_session, user.id)
    assert [row.id for row in grants] == [grant.id]


@pytest.mark.asyncio
async def test_duplicate_active_permission_raises_and_reactivation_keeps_row(
    db_session, admin_service
):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    read_id = permission_of(objetivos, "read").id
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    first = await admin_service.grant_permission(admin.id, user.id, read_id, Scope.TENANT, "condo-1")
    with pytest.raises(AlreadyGrantedException):
        await admin_service.grant_permission(admin.id, user.id, read_id, Scope.TENANT, "condo-1")

    # outro scope_id é outra concessão
    other = await admin_service.grant_permission(admin.id, user.id, read_id, Scope.TENANT, "condo-2")
    assert other.id != first.id

    await admin_service.revoke_permission(admin.id, user.id, first.id)
    again = await admin_service.grant_permission(admin.id, user.id, read_id, Scope.TENANT, "condo-1")
    assert again.id == first.id
    assert len(await _user_permissions(db_session, user.id)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("blank", ["", "   "])
async def test_blank_scope_id_is_the_same_grant_as_none(db_session, admin_service, blank):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    read_id = permission_of(objetivos, "read").id
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    first = await admin_service.grant_permission(admin.id, user.id, read_id, Scope.OWN)
    with pytest.raises(AlreadyGrantedException):
        await admin_service.grant_permission(admin.id, user.id, read_id, Scope.OWN, blank)

    await admin_service.revoke_permission(admin.id, user.id, first.id)
    again = await admin_service.grant_permission(admin.id, user.id, read_id, Scope.OWN, blank)

    assert again.id == first.id
    assert again.scope_id is None
    grants = await _user_permissions(db_session, user.id)
    assert [(grant.id, grant.scope_id) for grant in grants] == [(first.id, None)]


@pytest.mark.asyncio
async def test_identity_index_rejects_second_row_with_null_scope_id(db_session):
    modules = await seed_catalogue(db_session)
    user = await create_user(db_session, "ana@condo.test")
    read_id = permission_of(modules["objetivos"], "read").id
    for _ in range(2):
        db_session.add(
            UserPermission(
                user_id=user.id,
                permission_id=read_id,
                scope=Scope.OWN.value,
                scope_id=None,
                granted_at=utcnow(),
            )
        )

    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_tenant_scope_id_is_stored_trimmed(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    read_id = permission_of(objetivos, "read").id
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    grant = await admin_service.grant_permission(
        admin.id, user.id, read_id, Scope.TENANT, " condo-1 "
    )
    assert grant.scope_id == "condo-1"

    with pytest.raises(AlreadyGrantedException):
        await admin_service.grant_permission(admin.id, user.id, read_id, Scope.TENANT, "condo-1")


@pytest.mark.asyncio
async def test_revoke_permission_does_not_cascade_to_read(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos = modules["objetivos"]
    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)

    create = await admin_service.grant_permission(
        admin.id, user.id, permission_of(objetivos, "create").id, Scope.ALL
    )
    await admin_service.revoke_permission(admin.id, user.id, create.id)

    active = [grant for grant in await _user_permissions(db_session, user.id) if grant.is_active]
    assert [grant.permission_id for grant in active] == [permission_of(objetivos, "read").id]

    with pytest.raises(NotFoundException):
        await admin_service.revoke_permission(admin.id, user.id, create.id)


@pytest.mark.asyncio
async def test_revoke_module_cascades_only_to_direct_grants_of_that_module(
    db_session, admin_service, permissions_cache
):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    objetivos, reportes = modules["objetivos"], modules["reportes"]

    pools = PoolService(db_session, cache=permissions_cache)
    pool = await pools.create(admin.id, "Conselho")
    await pools.add_member(admin.id, pool.id, user.id)
    await pools.grant_module_access(admin.id, pool.id, objetivos.id)
    pool_grant = await pools.grant_permission(
        admin.id, pool.id, permission_of(objetivos, "read").id, Scope.ALL
    )

    await admin_service.grant_module_access(admin.id, user.id, objetivos.id)
    await admin_service.grant_module_access(admin.id, user.id, reportes.id)
    await admin_service.grant_permission(
        admin.id, user.id, permission_of(objetivos, "update").id, Scope.OWN
    )
    export = await admin_service.grant_permission(
        admin.id, user.id, permission_of(reportes, "export").id, Scope.ALL
    )

    await admin_service.revoke_module_access(admin.id, user.id, objetivos.id)

    by_permission = {
        grant.permission_id: grant for grant in await _user_permissions(db_session, user.id)
    }
    assert by_permission[permission_of(objetivos, "update").id].is_active is False
    assert by_permission[permission_of(objetivos, "read").id].is_active is False
    assert by_permission[export.permission_id].is_active is True

    await db_session.refresh(pool_grant)
    assert pool_grant.is_active is True

    resolver = PermissionService(db_session, cache=permissions_cache)
    assert await resolver.has_module_access(user.id, "objetivos") is True
    assert await resolver.has_permission(user.id, "objetivos:read") is True
    assert await resolver.has_permission(user.id, "objetivos:update") is False
    assert await resolver.has_permission(user.id, "reportes:export") is True


@pytest.mark.asyncio
async def test_mutations_invalidate_user_cache(db_session, admin_service, permissions_cache):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    bystander = await create_user(db_session, "beto@condo.test")

    permissions_cache.set(user.id, CachedUserAccess())
    permissions_cache.set(bystander.id, CachedUserAccess())

    await admin_service.grant_module_access(admin.id, user.id, modules["objetivos"].id)

    assert permissions_cache.get(user.id) is None
    assert permissions_cache.get(bystander.id) is not None


@pytest.mark.asyncio
async def test_effective_permissions_report_sources(db_session, admin_service, permissions_cache):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    user = await create_user(db_session, "ana@condo.test")
    pools = PoolService(db_session, cache=permissions_cache)
    pool = await pools.create(admin.id, "Tesouraria")
    await pools.add_member(admin.id, pool.id, user.id)
    await pools.grant_module_access(admin.id, pool.id, modules["reportes"].id)
    await admin_service.grant_module_access(admin.id, user.id, modules["objetivos"].id)
    await admin_service.grant_permission(
        admin.id, user.id, permission_of(modules["objetivos"], "read").id, Scope.ALL
    )

    report = await admin_service.get_user_effective_permissions(user.id)

    sources = {(item["module_code"], item["source"], item["pool_name"]) for item in report["modules"]}
    assert sources == {("objetivos", "direct", None), ("reportes", "pool", "Tesouraria")}
    assert [(item["module_code"], item["code"]) for item in report["permissions"]] == [
        ("objetivos", "read")
    ]

    users = await admin_service.get_users_by_module("reportes")
    assert [(row["user"].id, row["source"]) for row in users] == [(user.id, "pool")]


@pytest.mark.asyncio
async def test_search_users_filters_and_paginates(db_session, admin_service):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "root@condo.test", super_admin=True)
    ana = await create_user(db_session, "ana@condo.test")
    await create_user(db_session, "beto@condo.test")
    await admin_service.grant_module_access(admin.id, ana.id, modules["objetivos"].id)

    page = await admin_service.search_users(search="condo.test", page=1, limit=2)
    assert page["total"] == 3
    assert len(page["items"]) == 2

    filtered = await admin_service.search_users(module_code="objetivos")
    assert [user.id for user in filtered["items"]] == [ana.id]

    assert (await admin_service.search_users(search="BETO"))["total"] == 1
