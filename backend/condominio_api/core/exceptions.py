"""
Exceções de domínio da aplicação.

Os serviços levantam estas exceções; ``main.py`` as converte em respostas
JSON no formato ``{"error": {"code", "message", "details"}}``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AppException(Exception):
    """Exceção base da aplicação."""

    def __init__(
        self,
        message: str,
        code: str = "app_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)


class NotFoundException(AppException):
    """Usuário, módulo, permissão, pool ou concessão inexistente."""

    def __init__(
        self,
        message: str = "Recurso não encontrado",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="not_found",
            status_code=404,
            details=details,
        )


class ConflictException(AppException):
    """Conflito com o estado atual do recurso."""

    def __init__(
        self,
        message: str,
        code: str = "conflict",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            details=details,
        )


class AlreadyGrantedException(ConflictException):
    """Tentativa de conceder algo que já está ativo."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="already_granted", details=details)


class PreconditionFailedException(AppException):
    """Pré-condição de concessão não satisfeita (ex.: sem acesso ao módulo)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="precondition_failed",
            status_code=400,
            details=details,
        )
