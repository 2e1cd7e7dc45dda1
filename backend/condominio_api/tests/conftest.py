"""Configuração global do pytest para os testes do backend.

As variáveis de ambiente mínimas são definidas ANTES de qualquer import da
aplicação: ``condominio_api/db/base.py`` cria o engine no nível de módulo e
``Settings`` exige as chaves secretas.

Os testes de banco usam SQLite em memória (aiosqlite) com o schema criado a
partir de ``Base.metadata``; cada teste recebe um banco novo.
"""
from __future__ import annotations

import os


def _set_env_defaults() -> None:
    """Seta variáveis de ambiente mínimas para que pydantic Settings não falhe."""
    defaults = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "SECRET_KEY": "test-secret-key-32-chars-minimum!!",
        "JWT_SECRET_KEY": "test-jwt-secret-key-32chars-min!",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "METRICS_ENABLED": "true",
    }
    for key, val in defaults.items():
        os.environ.setdefault(key, val)


# ---------------------------------------------------------------------------
# Executa antes de qualquer import de módulo da app
# ---------------------------------------------------------------------------
_set_env_defaults()


import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from condominio_api.db.base import Base  # noqa: E402
import condominio_api.db.models  # noqa: E402,F401
from condominio_api.services.permissions_cache import (  # noqa: E402
    PermissionsCache,
    get_permissions_cache,
)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def permissions_cache() -> PermissionsCache:
    return PermissionsCache(ttl_ms=300_000)


@pytest.fixture(autouse=True)
def _clear_global_permissions_cache():
    """O cache do processo é compartilhado pelas rotas; isola cada teste."""
    get_permissions_cache().clear()
    yield
    get_permissions_cache().clear()
