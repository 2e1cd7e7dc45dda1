"""Testes de rota: login, sessão e administração de concessões via HTTP."""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio

from condominio_api.core.security import create_access_token
from condominio_api.db.base import get_db
from condominio_api.main import app
from condominio_api.tests.factories import create_user, permission_of, seed_catalogue
from condominio_api.tests.http_test_client import make_async_asgi_client


@pytest_asyncio.fixture
async def client(db_session):
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    async with make_async_asgi_client(app) as async_client:
        yield async_client
    app.dependency_overrides.pop(get_db, None)


def _auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.mark.asyncio
async def test_login_and_me(client, db_session):
    user = await create_user(db_session, "sindico@condominio.com.br", password="Senha@123")

    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": "SINDICO@condominio.com.br", "password": "Senha@123"},
    )
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert resp.json()["token_type"] == "bearer"

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == str(user.id)


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, db_session):
    await create_user(db_session, "sindico@condominio.com.br", password="Senha@123")

    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": "sindico@condominio.com.br", "password": "errada"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_admin_routes_require_super_admin(client, db_session):
    user = await create_user(db_session, "morador@condominio.com.br")

    resp = await client.get("/api/v1/admin/pools", headers=_auth(user))

    assert resp.status_code == 403
    assert resp.json() == {"detail": "Forbidden: insufficient permissions"}


@pytest.mark.asyncio
async def test_grant_flow_and_error_envelope(client, db_session):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "admin@condominio.com.br", super_admin=True)
    user = await create_user(db_session, "morador@condominio.com.br")
    objetivos = modules["objetivos"]
    base = f"/api/v1/admin/permissions/users/{user.id}"

    denied = await client.post(
        f"{base}/permissions",
        json={"permission_id": str(permission_of(objetivos, "create").id), "scope": "all"},
        headers=_auth(admin),
    )
    assert denied.status_code == 400
    assert denied.json()["error"]["code"] == "precondition_failed"

    granted = await client.post(
        f"{base}/modules", json={"module_id": str(objetivos.id)}, headers=_auth(admin)
    )
    assert granted.status_code == 201
    assert granted.json()["granted_by"] == str(admin.id)

    duplicate = await client.post(
        f"{base}/modules", json={"module_id": str(objetivos.id)}, headers=_auth(admin)
    )
    assert duplicate.status_code == 409
    error = duplicate.json()["error"]
    assert error["code"] == "already_granted"
    assert error["message"]
    assert "timestamp" in error

    permission = await client.post(
        f"{base}/permissions",
        json={
            "permission_id": str(permission_of(objetivos, "create").id),
            "scope": "tenant",
            "scope_id": "condo-1",
        },
        headers=_auth(admin),
    )
    assert permission.status_code == 201
    assert permission.json()["scope"] == "tenant"

    effective = await client.get(base, headers=_auth(admin))
    assert effective.status_code == 200
    codes = sorted(item["code"] for item in effective.json()["permissions"])
    assert codes == ["create", "read"]

    missing = await client.delete(
        f"{base}/modules/{uuid.uuid4()}", headers=_auth(admin)
    )
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"

    revoked = await client.delete(f"{base}/modules/{objetivos.id}", headers=_auth(admin))
    assert revoked.status_code == 204

    after = await client.get(base, headers=_auth(admin))
    assert after.json()["modules"] == []
    assert after.json()["permissions"] == []


@pytest.mark.asyncio
async def test_inconsistent_scope_id_is_rejected_by_schema(client, db_session):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "admin@condominio.com.br", super_admin=True)
    user = await create_user(db_session, "morador@condominio.com.br")

    resp = await client.post(
        f"/api/v1/admin/permissions/users/{user.id}/permissions",
        json={
            "permission_id": str(permission_of(modules["objetivos"], "read").id),
            "scope": "tenant",
        },
        headers=_auth(admin),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_session_endpoints_reflect_pool_grants(client, db_session):
    modules = await seed_catalogue(db_session)
    admin = await create_user(db_session, "admin@condominio.com.br", super_admin=True)
    user = await create_user(db_session, "morador@condominio.com.br")
    reportes = modules["reportes"]

    pool = await client.post(
        "/api/v1/admin/pools", json={"name": "Tesouraria"}, headers=_auth(admin)
    )
    assert pool.status_code == 201
    pool_id = pool.json()["id"]

    member = await client.post(
        f"/api/v1/admin/pools/{pool_id}/members",
        json={"user_id": str(user.id)},
        headers=_auth(admin),
    )
    assert member.status_code == 201
    module = await client.post(
        f"/api/v1/admin/pools/{pool_id}/modules",
        json={"module_id": str(reportes.id)},
        headers=_auth(admin),
    )
    assert module.status_code == 201
    grant = await client.post(
        f"/api/v1/admin/pools/{pool_id}/permissions",
        json={"permission_id": str(permission_of(reportes, "export").id), "scope": "all"},
        headers=_auth(admin),
    )
    assert grant.status_code == 201

    navigation = await client.get("/api/v1/session/modules", headers=_auth(user))
    assert navigation.status_code == 200
    assert navigation.json() == [
        {
            "code": "reportes",
            "name": "Reportes",
            "icon": None,
            "type": "specialized",
            "order": 90,
            "actions": ["export"],
        }
    ]

    scoped = await client.get("/api/v1/session/permissions/reportes", headers=_auth(user))
    assert scoped.json() == [{"code": "export", "scope": "all", "scope_id": None}]

    no_access = await client.get("/api/v1/session/permissions/objetivos", headers=_auth(user))
    assert no_access.json() == []

    listing = await client.get("/api/v1/admin/pools", headers=_auth(admin))
    assert [(item["name"], item["member_count"]) for item in listing.json()] == [
        ("Tesouraria", 1)
    ]
