"""
Base de dados SQLAlchemy.

Configuração assíncrona e sessão para o PostgreSQL.
"""

from sqlalchemy import Column, DateTime
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func

from condominio_api.config import get_settings

settings = get_settings()

_engine_options = {"echo": settings.debug}
if not settings.uses_sqlite:
    _engine_options.update(
        pool_size=settings.postgres_pool_size,
        max_overflow=settings.postgres_max_overflow,
    )

# Engine assíncrono
engine = create_async_engine(settings.postgres_url, **_engine_options)

# Session factory assíncrono
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Classe base para todos os modelos SQLAlchemy."""

    pass


class TimestampMixin:
    """Colunas de auditoria temporal e marcador de soft-delete."""

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)


async def get_db() -> AsyncSession:
    """
    Dependency para injetar sessão de banco nos endpoints.

    Yields:
        AsyncSession: Sessão assíncrona do PostgreSQL
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
