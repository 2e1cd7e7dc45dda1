"""
Configurações centralizadas da aplicação usando Pydantic Settings.

Este módulo carrega e valida todas as variáveis de ambiente do arquivo .env
e fornece uma interface type-safe para acessá-las em toda a aplicação.
"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional

# Caminho base do projeto
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / "backend" / ".env"


class Settings(BaseSettings):
    """Configurações da aplicação."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Gestão de Condomínios"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    secret_key: str
    allowed_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "condominios"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_pool_size: int = 20
    postgres_max_overflow: int = 10

    # Sobrescreve a URL montada a partir de postgres_* (ex.: sqlite+aiosqlite em testes)
    database_url: Optional[str] = None

    @property
    def postgres_url(self) -> str:
        """URL de conexão assíncrona para SQLAlchemy."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def sync_postgres_url(self) -> str:
        """URL de conexão síncrona para Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def uses_sqlite(self) -> bool:
        return self.postgres_url.startswith("sqlite")

    # JWT
    jwt_access_token_expire_minutes: int = 30
    jwt_algorithm: str = "HS256"
    jwt_secret_key: str

    # Permissões
    permissions_cache_ttl_ms: int = 300_000
    permissions_cache_max_entries: Optional[int] = None

    # Observability
    metrics_enabled: bool = True


@lru_cache()
def get_settings() -> Settings:
    """
    Retorna instância cached de Settings.

    Usa lru_cache para garantir que as configurações sejam carregadas
    apenas uma vez e reutilizadas em toda a aplicação.

    Returns:
        Settings: Instância de configurações validadas
    """
    return Settings()
