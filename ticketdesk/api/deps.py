from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import AuthenticationError, AuthorizationError
from ticketdesk.core.security import decode_token
from ticketdesk.db.models import RoleEnum as Role, User
from ticketdesk.db.session import get_session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_token(request: Request) -> str | None:
    # назва заголовка береться з settings (за замовчуванням x-auth-token)
    header = get_settings(request).token_header
    return request.headers.get(header) or None


# Тип для DI сесії БД / налаштувань
DBDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_current_user(
    db: DBDep,
    settings: SettingsDep,
    token: Annotated[str | None, Depends(get_token)],
) -> User:
    """
    Декодує токен із заголовка, дістає користувача з БД.
    Роль беремо з БД, а не з токена: зміна ролі діє з наступного запиту.
    """
    if not token:
        raise AuthenticationError("No token, authorization denied")
    try:
        payload = decode_token(token, settings.jwt_secret, settings.jwt_alg)
        user_id = int(payload["sub"])
    except (ValueError, KeyError, TypeError):
        raise AuthenticationError("Token is not valid")

    user = await db.get(User, user_id)
    if not user:
        raise AuthenticationError("Token is not valid")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(*allowed: Role):
    """
    Пускає лише користувачів, чия роль входить у перелік allowed.
    Приклад: @router.get(..., dependencies=[Depends(require_role(Role.admin))])
    """
    allowed_set = set(allowed)

    async def _guard(current: CurrentUser) -> User:
        if current.role not in allowed_set:
            need = ", ".join(sorted(r.value for r in allowed_set))
            raise AuthorizationError(f"Access denied. Required role: {need}")
        return current

    return _guard


def require_admin():
    return require_role(Role.admin)
