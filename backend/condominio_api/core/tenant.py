"""
Middleware de contexto de condomínio.

O console web envia o condomínio selecionado no header ``X-Condominium-ID``.
O valor é apenas contexto para verificação de escopo TENANT; não autentica
nada e não é obrigatório.
"""

from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


CONDOMINIUM_HEADER = "X-Condominium-ID"


class CondominiumContextMiddleware(BaseHTTPMiddleware):
    """Copia o condomínio selecionado do header para ``request.state``."""

    async def dispatch(self, request: Request, call_next) -> Response:
        condominium_id = request.headers.get(CONDOMINIUM_HEADER)
        request.state.condominium_id = condominium_id.strip() if condominium_id else None
        return await call_next(request)


async def get_condominium_id(request: Request) -> Optional[str]:
    """
    Dependency para obter o condomínio selecionado, quando informado.

    Args:
        request: Objeto de requisição FastAPI

    Returns:
        Identificador do condomínio ou None
    """
    condominium_id = getattr(request.state, "condominium_id", None)
    if condominium_id:
        return condominium_id
    header_value = request.headers.get(CONDOMINIUM_HEADER)
    return header_value.strip() if header_value else None
