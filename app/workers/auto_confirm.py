# app/workers/auto_confirm.py
"""
Періодичний sweep автопідтвердження.

    python -m app.workers.auto_confirm          # цикл кожні AUTO_CONFIRM_INTERVAL_SEC
    python -m app.workers.auto_confirm --once   # один прохід (для cron)

Кілька копій одночасно безпечні: кожну заявку закриває лише один CAS.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import AsyncSessionLocal
from app.services import lifecycle

logger = logging.getLogger("worker.auto_confirm")


async def run_once(session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> int:
    if session_maker is None:
        session_maker = AsyncSessionLocal
    async with session_maker() as db:
        return await lifecycle.auto_confirm_overdue(db)


async def run_forever(interval_sec: int) -> None:
    while True:
        try:
            await run_once()
        except Exception:
            # впала БД чи мережа, пробуємо на наступному тіку
            logger.exception("auto_confirm_sweep_failed")
        await asyncio.sleep(interval_sec)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Автопідтвердження виконаних заявок")
    p.add_argument("--once", action="store_true", help="Один прохід і вихід")
    p.add_argument(
        "--interval",
        type=int,
        default=settings.auto_confirm_interval_sec,
        help="Пауза між проходами, сек",
    )
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    setup_logging(settings.log_level)
    logger.info(
        "auto_confirm_worker_starting",
        extra={
            "days": settings.auto_confirm_days,
            "business_days": settings.auto_confirm_business_days,
            "once": args.once,
        },
    )
    if args.once:
        processed = asyncio.run(run_once())
        print(f"[auto-confirm] підтверджено заявок: {processed}")
    else:
        asyncio.run(run_forever(args.interval))


if __name__ == "__main__":
    main()
