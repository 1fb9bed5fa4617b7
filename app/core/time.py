from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite віддає naive-дати; вважаємо їх UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def shift_days(start: datetime, days: int, *, business_days: bool = False) -> datetime:
    """
    Зсув на `days` днів (від'ємне значення: назад у часі).
    У режимі business_days рахуємо лише пн-пт: субота/неділя пропускаються.
    """
    if not business_days:
        return start + timedelta(days=days)

    step = timedelta(days=1 if days >= 0 else -1)
    remaining = abs(days)
    current = start
    while remaining > 0:
        current += step
        if current.weekday() < 5:
            remaining -= 1
    return current
