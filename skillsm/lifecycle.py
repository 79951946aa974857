from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from .models import Skill, parse_timestamp

DEFAULT_RETENTION_DAYS = 15


def normalize_retention_days(raw: object, default: int = DEFAULT_RETENTION_DAYS) -> int:
    if isinstance(raw, bool):
        return default
    try:
        days = int(raw)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return default
    return max(1, days)


def retention_window(retention_days: int) -> timedelta:
    return timedelta(days=max(1, int(retention_days)))


def is_expired(skill: Skill, retention_days: int, now: datetime | None = None) -> bool:
    # unparseable deletedAt counts as not expired
    deleted_at = parse_timestamp(skill.deleted_at)
    if deleted_at is None:
        return False
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current - deleted_at > retention_window(retention_days)


def partition_expired(
    recycle_bin: Iterable[Skill],
    retention_days: int,
    now: datetime | None = None,
) -> tuple[list[Skill], list[Skill]]:
    kept: list[Skill] = []
    expired: list[Skill] = []
    for skill in recycle_bin:
        if is_expired(skill, retention_days, now):
            expired.append(skill)
        else:
            kept.append(skill)
    return kept, expired
