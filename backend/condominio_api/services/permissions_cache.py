"""
Cache em memória das permissões resolvidas por usuário.

Cada processo mantém o seu; não há coordenação entre processos. Uma entrada
vale por ``permissions_cache_ttl_ms`` ou até a expiração mais próxima entre as
concessões que a compõem, o que vier primeiro.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Optional
import time

from condominio_api.config import get_settings
from condominio_api.core.logging import get_logger
from condominio_api.core.metrics import record_permission_cache_event


logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ScopeGrant:
    """Uma concessão granular já resolvida (direta ou herdada de pool)."""

    scope: str
    scope_id: Optional[str] = None
    source: str = "direct"


@dataclass(slots=True)
class CachedUserAccess:
    """Snapshot de acesso de um usuário.

    ``permissions`` é indexado por ``"modulo:acao"``. ``refresh_after`` é o
    instante (epoch, segundos) da expiração mais próxima entre as concessões
    consideradas, ou ``None`` quando nenhuma expira.
    """

    is_super_admin: bool = False
    module_codes: frozenset[str] = frozenset()
    permissions: dict[str, tuple[ScopeGrant, ...]] = field(default_factory=dict)
    refresh_after: Optional[float] = None


@dataclass(slots=True)
class _Entry:
    payload: CachedUserAccess
    stored_at: float
    expires_at: float


class PermissionsCache:
    """Cache TTL thread-safe, indexado pelo id do usuário."""

    def __init__(
        self,
        ttl_ms: int,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = Lock()

    @staticmethod
    def _key(user_id: Any) -> str:
        return str(user_id)

    def get(self, user_id: Any) -> Optional[CachedUserAccess]:
        key = self._key(user_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                record_permission_cache_event("miss")
                return None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                record_permission_cache_event("expired")
                return None

            record_permission_cache_event("hit")
            return entry.payload

    def set(self, user_id: Any, payload: CachedUserAccess) -> None:
        key = self._key(user_id)
        now = self._clock()
        expires_at = now + self.ttl_ms / 1000
        if payload.refresh_after is not None:
            expires_at = min(expires_at, payload.refresh_after)

        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = _Entry(payload=payload, stored_at=now, expires_at=expires_at)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    def invalidate(self, user_id: Any) -> None:
        with self._lock:
            removed = self._entries.pop(self._key(user_id), None)
        if removed is not None:
            record_permission_cache_event("invalidated")

    def invalidate_many(self, user_ids: Iterable[Any]) -> None:
        removed = 0
        with self._lock:
            for user_id in user_ids:
                if self._entries.pop(self._key(user_id), None) is not None:
                    removed += 1
        record_permission_cache_event("invalidated", removed)

    def clear(self) -> None:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        record_permission_cache_event("invalidated", removed)
        logger.info("permissions_cache_cleared", entries=removed)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "ttl_ms": self.ttl_ms}


_permissions_cache: Optional[PermissionsCache] = None


def get_permissions_cache() -> PermissionsCache:
    """Instância única do cache para o processo."""
    global _permissions_cache
    if _permissions_cache is None:
        settings = get_settings()
        _permissions_cache = PermissionsCache(
            ttl_ms=settings.permissions_cache_ttl_ms,
            max_entries=settings.permissions_cache_max_entries,
        )
    return _permissions_cache
