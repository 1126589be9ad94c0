"""Account endpoints (/auth).

  POST /auth/register          create an account, 201 {message, user}
  POST /auth/login             exchange credentials for {message, token, rol}
  GET  /auth/perfil            the caller's profile
  PUT  /auth/perfil            rename or change email
  PUT  /auth/cambiar-password  change password, current one required

Only an admin token can register another admin; anonymous callers get
student accounts.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from course_platform.api.dependencies import CurrentUser, SessionDep, optional_user
from course_platform.api.ratelimit import (
    LOGIN_LIMIT,
    REGISTER_LIMIT,
    require_rate_limit,
)
from course_platform.api.schemas import MessageOut, UserOut
from course_platform.core.errors import AuthorizationError
from course_platform.models.principal import Principal
from course_platform.services import auth_service, token_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# --- Request / Response schemas -------------------------------------------


class RegisterIn(BaseModel):
    nombre: str
    email: str
    password: str
    rol: str = "student"


class LoginIn(BaseModel):
    email: str
    password: str


class ProfileUpdateIn(BaseModel):
    nombre: str | None = None
    email: str | None = None


class PasswordChangeIn(BaseModel):
    passwordActual: str
    passwordNueva: str


class RegisterOut(BaseModel):
    message: str
    user: UserOut


class LoginOut(BaseModel):
    message: str
    token: str
    rol: str


class ProfileOut(BaseModel):
    message: str = "Profile updated"
    user: UserOut


# --- POST /auth/register --------------------------------------------------


@router.post(
    "/register",
    response_model=RegisterOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit("register", REGISTER_LIMIT))],
)
async def register(
    payload: RegisterIn,
    session: SessionDep,
    caller: Annotated[Principal | None, Depends(optional_user)],
) -> RegisterOut:
    if payload.rol == "admin" and (caller is None or not caller.is_admin()):
        logger.warning("Admin registration refused  caller=%s", caller)
        raise AuthorizationError("Only an administrator can create admin accounts")

    user = await auth_service.register_user(
        session,
        name=payload.nombre,
        email=payload.email,
        password=payload.password,
        role=payload.rol,
    )
    return RegisterOut(message="User registered", user=UserOut.from_user(user))


# --- POST /auth/login -----------------------------------------------------


@router.post(
    "/login",
    response_model=LoginOut,
    dependencies=[Depends(require_rate_limit("login", LOGIN_LIMIT))],
)
async def login(payload: LoginIn, session: SessionDep) -> LoginOut:
    user = await auth_service.authenticate_user(
        session, payload.email, payload.password
    )
    token = token_service.create_access_token(sub=str(user.id), role=user.role)
    logger.info("Login succeeded  user_id=%s", user.id)
    return LoginOut(message="Login successful", token=token, rol=user.role)


# --- /auth/perfil ---------------------------------------------------------


@router.get("/perfil", response_model=UserOut)
async def get_profile(principal: CurrentUser, session: SessionDep) -> UserOut:
    user = await auth_service.get_profile(session, principal.user_id)
    return UserOut.from_user(user)


@router.put("/perfil", response_model=ProfileOut)
async def update_profile(
    payload: ProfileUpdateIn, principal: CurrentUser, session: SessionDep
) -> ProfileOut:
    user = await auth_service.update_profile(
        session, principal.user_id, name=payload.nombre, email=payload.email
    )
    return ProfileOut(user=UserOut.from_user(user))


@router.put("/cambiar-password", response_model=MessageOut)
async def change_password(
    payload: PasswordChangeIn, principal: CurrentUser, session: SessionDep
) -> MessageOut:
    await auth_service.change_password(
        session,
        principal.user_id,
        current_password=payload.passwordActual,
        new_password=payload.passwordNueva,
    )
    return MessageOut(message="Password updated")
