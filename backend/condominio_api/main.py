"""
Aplicação Principal FastAPI - Gestão de Condomínios

Entry point do servidor REST API: autenticação, sessão do console web e
administração de módulos, permissões e pools.
"""
from __future__ import annotations

from time import perf_counter
from typing import Any
from uuid import uuid4

from condominio_api.core.logging import bind_request_context, configure_structlog, get_logger
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.responses import JSONResponse

from condominio_api.config import get_settings
from condominio_api.core.exceptions import AppException
from condominio_api.core.metrics import get_metrics_payload, is_enabled, record_http_request
from condominio_api.core.security import decode_access_token
from condominio_api.core.tenant import CONDOMINIUM_HEADER, CondominiumContextMiddleware
from condominio_api.api.v1 import auth
from condominio_api.api.v1.session import router as session_router
from condominio_api.api.v1.admin_modules import router as admin_modules_router
from condominio_api.api.v1.admin_permissions import router as admin_permissions_router
from condominio_api.api.v1.admin_pools import router as admin_pools_router
from condominio_api.db.base import engine
from condominio_api.services.permissions_cache import get_permissions_cache
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

settings = get_settings()
configure_structlog()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.
    """
    logger.info(
        "app_startup_started",
        app_name=settings.app_name,
        app_version=settings.app_version,
        environment=settings.environment,
        permissions_cache_ttl_ms=settings.permissions_cache_ttl_ms,
    )

    yield

    get_permissions_cache().clear()
    await engine.dispose()
    logger.info("app_shutdown")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Middleware de observabilidade básica com duração de request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-Id") or request.headers.get(
            "X-Request-ID"
        ) or str(uuid4())
        request.state.request_id = request_id
        start = perf_counter()
        condominium_id = request.headers.get(CONDOMINIUM_HEADER)
        user_id = self._extract_user_id(request)

        with bind_request_context(
            request_id=request_id,
            condominium_id=condominium_id,
            user_id=user_id,
        ):
            response = await call_next(request)

            elapsed_ms = (perf_counter() - start) * 1000
            response.headers["X-Request-Id"] = request_id
            response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.2f}"

            logger.info(
                "http_request_complete",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", None),
                duration_ms=round(elapsed_ms, 2),
            )
        return response

    @staticmethod
    def _extract_user_id(request: Request) -> str | None:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        payload = decode_access_token(auth_header.removeprefix("Bearer "))
        if not payload:
            return None
        return payload.get("sub")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Mede duração/contagem de requisições para o endpoint /metrics."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start
        if is_enabled():
            route = request.scope.get("route")
            record_http_request(
                method=request.method,
                path=getattr(route, "path", request.url.path),
                status=response.status_code,
                duration_seconds=elapsed,
            )
        return response


# Criar aplicação FastAPI
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Plataforma de gestão de condomínios: autenticação e motor de permissões",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Authentication", "description": "Autenticação de usuários."},
        {"name": "Sessão", "description": "Navegação e permissões do usuário autenticado."},
        {"name": "Admin - Módulos", "description": "Catálogo de módulos e ações."},
        {"name": "Admin - Permissões", "description": "Concessões diretas a usuários."},
        {"name": "Admin - Pools", "description": "Grupos de usuários e suas concessões."},
    ],
    lifespan=lifespan,
)


# =====================================================
# Middlewares
# =====================================================

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(CondominiumContextMiddleware)


# =====================================================
# Exception handlers
# =====================================================

@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Converte exceções de domínio no envelope de erro padrão."""
    logger.info(
        "app_exception",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "timestamp": exc.timestamp,
            }
        },
    )


def _build_health_result() -> dict[str, Any]:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


async def _check_database() -> dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "connected"}
    except (OSError, SQLAlchemyError) as exc:
        return {"status": "disconnected", "error": str(exc)}


async def _collect_dependency_checks() -> dict[str, Any]:
    return {
        "dependencies": {
            "database": await _check_database(),
        },
        "permissions_cache": get_permissions_cache().stats(),
    }


# =====================================================
# Rotas API v1
# =====================================================

api_router = APIRouter(prefix="/api/v1")

# Incluir routers
api_router.include_router(auth.router)
api_router.include_router(session_router)
api_router.include_router(admin_modules_router)
api_router.include_router(admin_permissions_router)
api_router.include_router(admin_pools_router)

app.include_router(api_router)


# =====================================================
# Health Check
# =====================================================

@app.get("/health")
async def health():
    """Health check simples: sempre retorna resumo consolidado."""
    payload = _build_health_result()
    payload["status"] = "healthy"
    payload.update(await _collect_dependency_checks())
    return payload


@app.get("/health/ready")
async def ready():
    """Readiness para orquestradores (carregamento de tráfego)."""
    payload = _build_health_result()
    checks = await _collect_dependency_checks()
    payload.update(checks)

    all_connected = all(
        dependency.get("status") == "connected"
        for dependency in checks["dependencies"].values()
    )

    if all_connected:
        payload["status"] = "ready"
        return payload

    payload["status"] = "unready"
    raise HTTPException(status_code=503, detail=payload)


@app.get("/health/live")
async def live():
    """Liveness: verifica se o processo está vivo."""
    payload = _build_health_result()
    payload["status"] = "alive"
    return payload


# =====================================================
# Métricas Prometheus
# =====================================================


@app.get("/metrics", include_in_schema=False)
async def metrics() -> PlainTextResponse:
    if not is_enabled():
        return PlainTextResponse("metrics_disabled 0\n")

    payload = get_metrics_payload()
    return PlainTextResponse(payload.decode("utf-8"), media_type="text/plain; version=0.0.4")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "condominio_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
