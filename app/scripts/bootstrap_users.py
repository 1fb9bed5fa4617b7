from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import create_access_token
from app.db.models import RoleEnum as Role, User
from app.db.session import AsyncSessionLocal

# демо-користувачі на кожну роль (dev/staging)
DEMO_USERS: list[tuple[str, Role, str]] = [
    ("customer@example.com", Role.CUSTOMER, "Customer"),
    ("tech@example.com", Role.TECHNICIAN, "Technician"),
    ("tech2@example.com", Role.TECHNICIAN, "Technician 2"),
    ("maintenance@example.com", Role.MAINTENANCE_ADMIN, "Maintenance Admin"),
    ("basma@example.com", Role.BASMA_ADMIN, "Basma Admin"),
    ("super@example.com", Role.SUPER_ADMIN, "Super Admin"),
]


# ---------- helpers ----------
async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def _ensure_user(db: AsyncSession, *, email: str, role: Role, name: Optional[str]) -> User:
    """
    Якщо користувача немає, створює його.
    Якщо є, оновлює роль/ім'я і активує.
    """
    user = await _get_user_by_email(db, email)

    if user is None:
        user = User(email=email, role=role, name=name, is_active=True)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        print(f"[bootstrap] створено користувача: {email} ({role.value})")
        return user

    if user.role != role or user.name != name or not user.is_active:
        await db.execute(
            update(User).where(User.id == user.id).values(role=role, name=name, is_active=True)
        )
        await db.commit()
        await db.refresh(user)
        print(f"[bootstrap] оновлено користувача: {email}")
    else:
        print(f"[bootstrap] існує без змін: {email} ({user.role.value})")
    return user


async def _seed(db: AsyncSession, *, print_tokens: bool) -> None:
    for email, role, name in DEMO_USERS:
        user = await _ensure_user(db, email=email, role=role, name=name)
        if print_tokens:
            token = create_access_token(
                subject=str(user.id),
                role=user.role.value,
                secret=settings.jwt_secret,
                expires_minutes=settings.jwt_expires_min,
                algorithm=settings.jwt_alg,
            )
            print(f"    {role.value:<18} Bearer {token}")

    print("[bootstrap] завершено ✅")


async def _run(*, print_tokens: bool) -> None:
    async with AsyncSessionLocal() as db:
        await _seed(db, print_tokens=print_tokens)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed демо-користувачів на кожну роль")
    p.add_argument("--tokens", dest="tokens", action="store_true", help="Надрукувати dev JWT для кожного")
    p.add_argument("--no-tokens", dest="tokens", action="store_false", help="Не друкувати токени")
    p.set_defaults(tokens=settings.env == "dev")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    if settings.env == "prod":
        raise SystemExit("Помилка: демо-користувачі не створюються в prod")
    asyncio.run(_run(print_tokens=args.tokens))


if __name__ == "__main__":
    main()
