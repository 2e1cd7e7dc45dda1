"""Métricas leves de execução (Prometheus)."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from condominio_api.config import get_settings

settings = get_settings()

_registry = CollectorRegistry()
_http_requests_total = None
_http_request_duration_seconds = None
_permission_checks_total = None
_permission_cache_events_total = None


def _build_metrics() -> None:
    global _http_requests_total, _http_request_duration_seconds
    global _permission_checks_total, _permission_cache_events_total

    if _http_requests_total is not None:
        return

    _http_requests_total = Counter(
        "http_requests_total",
        "Total de requisições HTTP",
        ["method", "path", "status"],
        registry=_registry,
    )
    _http_request_duration_seconds = Histogram(
        "http_request_duration_seconds",
        "Duração das requisições HTTP",
        ["method", "path", "status"],
        registry=_registry,
        buckets=[0.05, 0.1, 0.5, 1, 3, 5, 10],
    )
    _permission_checks_total = Counter(
        "permission_checks_total",
        "Decisões do motor de permissões",
        ["kind", "result"],
        registry=_registry,
    )
    _permission_cache_events_total = Counter(
        "permission_cache_events_total",
        "Eventos do cache de permissões (hit, miss, expired, invalidated)",
        ["event"],
        registry=_registry,
    )


def is_enabled() -> bool:
    """Métricas habilitadas globalmente."""
    return bool(settings.metrics_enabled)


def record_http_request(
    method: str,
    path: str,
    status: int,
    duration_seconds: float,
) -> None:
    """Registra métrica de request HTTP."""
    if not is_enabled():
        return
    _build_metrics()

    _http_requests_total.labels(
        method=method.upper(),
        path=path,
        status=str(status),
    ).inc()
    _http_request_duration_seconds.labels(
        method=method.upper(),
        path=path,
        status=str(status),
    ).observe(duration_seconds)


def record_permission_check(kind: str, allowed: bool) -> None:
    """Registra decisão de acesso (kind: module | permission)."""
    if not is_enabled():
        return
    _build_metrics()
    _permission_checks_total.labels(
        kind=kind,
        result="allowed" if allowed else "denied",
    ).inc()


def record_permission_cache_event(event: str, count: int = 1) -> None:
    """Registra evento do cache de permissões."""
    if not is_enabled() or count <= 0:
        return
    _build_metrics()
    _permission_cache_events_total.labels(event=event).inc(count)


def get_metrics_payload() -> bytes:
    """Métricas no formato texto do Prometheus."""
    if not is_enabled():
        return b""
    _build_metrics()
    return generate_latest(_registry)
