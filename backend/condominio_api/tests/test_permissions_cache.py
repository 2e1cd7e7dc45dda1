"""Testes do cache de permissões (TTL, expiração de concessões e invalidação)."""

from __future__ import annotations

import uuid

from condominio_api.services.permissions_cache import (
    CachedUserAccess,
    PermissionsCache,
    ScopeGrant,
)


class _Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _access(**kwargs) -> CachedUserAccess:
    return CachedUserAccess(
        module_codes=frozenset({"objetivos"}),
        permissions={"objetivos:read": (ScopeGrant("all"),)},
        **kwargs,
    )


def test_get_returns_none_on_miss():
    cache = PermissionsCache(ttl_ms=1_000, clock=_Clock())
    assert cache.get("u-1") is None


def test_entry_is_served_within_ttl_and_evicted_after():
    clock = _Clock()
    cache = PermissionsCache(ttl_ms=1_000, clock=clock)
    payload = _access()
    cache.set("u-1", payload)

    clock.advance(0.5)
    assert cache.get("u-1") is payload

    clock.advance(0.5)
    assert cache.get("u-1") is None
    assert cache.stats()["size"] == 0


def test_entry_never_outlives_earliest_grant_expiry():
    clock = _Clock()
    cache = PermissionsCache(ttl_ms=300_000, clock=clock)
    cache.set("u-1", _access(refresh_after=clock.now + 5))

    clock.advance(4)
    assert cache.get("u-1") is not None
    clock.advance(1)
    assert cache.get("u-1") is None


def test_set_refreshes_timestamp():
    clock = _Clock()
    cache = PermissionsCache(ttl_ms=1_000, clock=clock)
    cache.set("u-1", _access())
    clock.advance(0.8)
    cache.set("u-1", _access())
    clock.advance(0.8)
    assert cache.get("u-1") is not None


def test_keys_are_normalised_to_string():
    cache = PermissionsCache(ttl_ms=1_000, clock=_Clock())
    user_id = uuid.uuid4()
    cache.set(user_id, _access())

    assert cache.get(str(user_id)) is not None
    cache.invalidate(str(user_id))
    assert cache.get(user_id) is None


def test_invalidate_many_and_clear():
    cache = PermissionsCache(ttl_ms=1_000, clock=_Clock())
    for user_id in ("u-1", "u-2", "u-3"):
        cache.set(user_id, _access())

    cache.invalidate_many(["u-1", "u-2", "missing"])
    assert cache.get("u-1") is None
    assert cache.get("u-2") is None
    assert cache.get("u-3") is not None

    cache.clear()
    assert cache.stats() == {"size": 0, "ttl_ms": 1_000}


def test_invalidate_unknown_key_is_noop():
    cache = PermissionsCache(ttl_ms=1_000, clock=_Clock())
    cache.invalidate("nobody")
    cache.invalidate_many([])
    assert cache.stats()["size"] == 0


def test_max_entries_evicts_oldest():
    cache = PermissionsCache(ttl_ms=1_000, max_entries=2, clock=_Clock())
    cache.set("u-1", _access())
    cache.set("u-2", _access())
    cache.set("u-3", _access())

    assert cache.get("u-1") is None
    assert cache.get("u-2") is not None
    assert cache.get("u-3") is not None
    assert cache.stats()["size"] == 2
