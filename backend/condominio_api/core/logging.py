"""Configuração de logging estruturado padrão da aplicação."""

from __future__ import annotations

from contextvars import ContextVar
import logging
from collections.abc import Iterator
from typing import Any

from contextlib import contextmanager

import structlog

from condominio_api.config import get_settings


_REQUEST_ID_VAR: ContextVar[str | None] = ContextVar("request_id", default=None)
_CONDOMINIUM_ID_VAR: ContextVar[str | None] = ContextVar("condominium_id", default=None)
_USER_ID_VAR: ContextVar[str | None] = ContextVar("user_id", default=None)


def _to_str(value: Any) -> str | None:
    """Converte valor de contexto para string quando aplicável."""
    if value is None:
        return None
    return str(value)


def _is_production(settings) -> bool:
    environment = settings.environment.lower()
    return not settings.debug and environment not in {"development", "dev", "local", "test"}


@contextmanager
def bind_request_context(
    *,
    request_id: str | None = None,
    condominium_id: str | None = None,
    user_id: str | None = None,
) -> Iterator[None]:
    """Adiciona contexto de request aos logs via contextvars."""
    tokens = []
    if request_id is not None:
        tokens.append((_REQUEST_ID_VAR, _REQUEST_ID_VAR.set(_to_str(request_id))))
    if condominium_id is not None:
        tokens.append(
            (_CONDOMINIUM_ID_VAR, _CONDOMINIUM_ID_VAR.set(_to_str(condominium_id)))
        )
    if user_id is not None:
        tokens.append((_USER_ID_VAR, _USER_ID_VAR.set(_to_str(user_id))))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def inject_request_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Injeta contexto atual (request/condomínio/usuário) no evento de log."""
    del logger, method_name

    request_id = _REQUEST_ID_VAR.get()
    condominium_id = _CONDOMINIUM_ID_VAR.get()
    user_id = _USER_ID_VAR.get()

    if request_id is not None:
        event_dict["request_id"] = request_id
    if condominium_id is not None:
        event_dict["condominium_id"] = condominium_id
    if user_id is not None:
        event_dict.setdefault("user_id", user_id)

    return event_dict


def configure_structlog() -> None:
    """Configura structlog com saída estruturada para observabilidade."""
    settings = get_settings()
    is_production = _is_production(settings)
    level = logging.DEBUG if settings.debug else logging.INFO

    logging.basicConfig(level=level, format="%(message)s", force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if is_production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            inject_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Retorna logger estruturado para o módulo informado."""
    return structlog.get_logger(name)
