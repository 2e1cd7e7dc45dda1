"""
Tipos do motor de permissões e verificação de escopo.

Uma chave de permissão tem o formato ``"modulo:acao"`` (ex.: ``"objetivos:create"``)
e é convertida em :class:`PermissionKey` na borda, antes de chegar aos serviços.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Scope(str, Enum):
    """Abrangência de uma concessão granular.

    - OWN: apenas recursos do próprio usuário (verificado pelo chamador)
    - TENANT: recursos de um condomínio específico (``scope_id``)
    - ALL: sem restrição
    """

    OWN = "own"
    TENANT = "tenant"
    ALL = "all"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    MANAGE = "manage"


class ModuleType(str, Enum):
    CRUD = "crud"
    SPECIALIZED = "specialized"


# Ações que, em módulos CRUD, implicam a ação de leitura.
MUTATING_CRUD_ACTIONS = frozenset({Action.CREATE.value, Action.UPDATE.value, Action.DELETE.value})


@dataclass(frozen=True, slots=True)
class PermissionKey:
    """Chave ``modulo:acao`` já validada."""

    module_code: str
    action: str

    @classmethod
    def parse(cls, raw: str) -> Optional["PermissionKey"]:
        """Retorna ``None`` quando a chave não tem exatamente módulo e ação."""
        if not isinstance(raw, str):
            return None
        parts = raw.split(":")
        if len(parts) != 2:
            return None
        module_code, action = (part.strip() for part in parts)
        if not module_code or not action:
            return None
        return cls(module_code=module_code, action=action)

    def __str__(self) -> str:
        return f"{self.module_code}:{self.action}"


@dataclass(frozen=True, slots=True)
class PermissionContext:
    """Contexto do recurso acessado, montado pelo guard a partir da requisição."""

    tenant_id: Optional[str] = None
    resource_owner_id: Optional[str] = None
    property_id: Optional[str] = None


def normalize_scope_id(scope_id: Optional[str]) -> Optional[str]:
    """Remove espaços de ``scope_id``; valores em branco viram ``None``."""
    if scope_id is None:
        return None
    scope_id = scope_id.strip()
    return scope_id or None


def validate_scope_id(scope: Scope, scope_id: Optional[str]) -> Optional[str]:
    """Mensagem de erro quando ``scope_id`` não combina com o escopo, senão ``None``."""
    scope_id = normalize_scope_id(scope_id)
    if scope == Scope.TENANT and not scope_id:
        return "scope_id é obrigatório para escopo tenant"
    if scope != Scope.TENANT and scope_id:
        return "scope_id só é permitido para escopo tenant"
    return None


def scope_matches(
    granted_scope: Scope | str,
    granted_scope_id: Optional[str],
    context: Optional[PermissionContext] = None,
) -> bool:
    """Decide se o escopo concedido cobre o contexto da requisição.

    Sem contexto (listagens) o escopo TENANT é aceito; a filtragem por
    condomínio acontece na consulta do recurso. OWN é sempre aceito aqui e a
    verificação de propriedade do registro fica com o chamador.
    """
    scope = Scope(granted_scope)

    if scope == Scope.ALL:
        return True

    if scope == Scope.OWN:
        return True

    if context is None:
        return True

    if context.tenant_id is None:
        return False

    return granted_scope_id is not None and str(granted_scope_id) == str(context.tenant_id)
