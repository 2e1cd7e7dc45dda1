"""Predicados SQL e utilitários de data compartilhados pelas consultas de concessão."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, or_


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devolve datetimes sem fuso; todos os valores gravados são UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def live_grant_clause(model, now: datetime):
    """Concessão ativa e não expirada em ``now``."""
    return and_(
        model.is_active.is_(True),
        or_(model.expires_at.is_(None), model.expires_at > now),
    )


def scope_id_clause(column, scope_id: Optional[str]):
    if scope_id is None:
        return column.is_(None)
    return column == scope_id


def earliest_expiry(values) -> Optional[float]:
    """Menor ``expires_at`` (epoch) entre as concessões, ignorando as perpétuas."""
    timestamps = [as_utc(value).timestamp() for value in values if value is not None]
    return min(timestamps) if timestamps else None
