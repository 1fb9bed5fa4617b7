from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import decode_token
from app.db.models import RoleEnum as Role, User
from app.db.session import get_session
from app.services.errors import DenialKind, Forbidden
from app.services.permissions import Actor

# Токени видає зовнішній identity-сервіс; tokenUrl лише для /api/docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

# Тип для DI сесії БД
DBDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_user(
    db: DBDep,
    token: Annotated[str, Depends(oauth2_scheme)]
) -> User:
    """
    Декодує Bearer JWT (sub = id користувача), дістає користувача з БД і перевіряє активність.
    """
    try:
        payload = decode_token(token, settings.jwt_secret, settings.jwt_alg)
        user_id = int(payload["sub"])
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive or not found")
    return user


UserDep = Annotated[User, Depends(get_current_user)]


def actor_from(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def require_role(*allowed: Role):
    """
    Пускає лише користувачів, чия роль входить у перелік allowed.
    Приклад: @router.post(..., dependencies=[Depends(require_role(Role.TECHNICIAN))])
    """
    allowed_set = set(allowed)

    async def _guard(current: UserDep) -> User:
        if current.role not in allowed_set:
            raise Forbidden(f"Role {current.role.value} is not allowed here", DenialKind.ROLE)
        return current

    return _guard
