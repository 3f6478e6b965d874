# ticketdesk/api/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, status

from ticketdesk.api.deps import CurrentUser, DBDep, SettingsDep
from ticketdesk.schemas.auth import LoginIn, RegisterIn, TokenOut
from ticketdesk.schemas.users import UserOut
from ticketdesk.services.auth import authenticate, make_token_for_user, register_user

router = APIRouter()


@router.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, db: DBDep, settings: SettingsDep):
    user = await register_user(
        db,
        settings,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        role=payload.role,
    )
    return TokenOut(token=make_token_for_user(user, settings))


@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, db: DBDep, settings: SettingsDep):
    user = await authenticate(db, email=payload.email, password=payload.password)
    return TokenOut(token=make_token_for_user(user, settings))


@router.get("/me", response_model=UserOut)
async def me(current: CurrentUser):
    return current
