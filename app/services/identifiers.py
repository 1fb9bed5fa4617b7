"""
Людські ідентифікатори заявок у межах будівлі: YY-CODE-SEQ (наприклад 25-A-001).

Послідовність окрема для кожної будівлі й обнуляється з новим роком.
Адмін може задати власний ідентифікатор (3-20 символів: літери, цифри, дефіс).
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import BuildingConfig, MaintenanceRequest
from app.services.errors import ValidationError

_CUSTOM_ID_RE = re.compile(r"^[A-Z0-9-]{3,20}$", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")

FALLBACK_BUILDING_CODE = "BLD"
DUPLICATE_IDENTIFIER_MESSAGE = "This identifier already exists. Please use a different one."


def building_code(building: str) -> str:
    # "Building A" -> "BUILDINGA", "abraj-1" -> "ABRAJ1" (макс. 10 символів)
    return _NON_ALNUM_RE.sub("", building.upper())[:10] or FALLBACK_BUILDING_CODE


def format_identifier(year: int, code: str, sequence: int) -> str:
    return f"{year % 100:02d}-{code}-{sequence:03d}"


async def generate_identifier(
    db: AsyncSession,
    *,
    building: Optional[str],
    now: datetime,
    custom: Optional[str] = None,
) -> Optional[str]:
    if custom:
        return await _claim_custom(db, custom)
    if not building:
        return None
    return await _next_for_building(db, building, now.year)


async def _identifier_taken(db: AsyncSession, identifier: str) -> bool:
    found = (
        await db.execute(select(MaintenanceRequest.id).where(MaintenanceRequest.custom_identifier == identifier))
    ).first()
    return found is not None


async def _claim_custom(db: AsyncSession, custom: str) -> str:
    if not _CUSTOM_ID_RE.match(custom):
        raise ValidationError(
            "Invalid custom identifier format. Use 3-20 characters, letters, numbers, and hyphens only."
        )
    identifier = custom.upper()
    if await _identifier_taken(db, identifier):
        raise ValidationError(DUPLICATE_IDENTIFIER_MESSAGE)
    return identifier


def _insert_for(db: AsyncSession):
    # INSERT ... ON CONFLICT є лише в діалектних insert()
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


async def _locked_config(db: AsyncSession, building: str, year: int) -> BuildingConfig:
    q = select(BuildingConfig).where(BuildingConfig.building_name == building).with_for_update()
    cfg = (await db.execute(q)).scalar_one_or_none()
    if cfg is not None:
        return cfg
    # перший запит для будівлі: паралельна вставка того ж рядка просто нічого не робить
    stmt = (
        _insert_for(db)(BuildingConfig)
        .values(
            building_name=building,
            building_code=building_code(building),
            current_sequence=0,
            last_reset_year=year,
        )
        .on_conflict_do_nothing(index_elements=["building_name"])
    )
    await db.execute(stmt)
    return (await db.execute(q)).scalar_one()


async def _next_for_building(db: AsyncSession, building: str, year: int) -> str:
    cfg = await _locked_config(db, building, year)

    # новий рік: нумерація з початку
    if cfg.last_reset_year != year:
        cfg.current_sequence = 0
        cfg.last_reset_year = year

    # номер міг уже зайняти адмін власним ідентифікатором
    while True:
        cfg.current_sequence += 1
        identifier = format_identifier(year, cfg.building_code, cfg.current_sequence)
        if not await _identifier_taken(db, identifier):
            return identifier
