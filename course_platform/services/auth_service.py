"""Accounts: registration, login, profile and password changes.

Passwords are hashed with Argon2; the encoded hash carries its own salt
and parameters, so ``check_needs_rehash`` can upgrade old hashes on the
next successful login.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from course_platform.models.user import ROLES, User
from course_platform.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

_ph = PasswordHasher()

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    return _ph.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validate_email(email: str) -> None:
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")


def _validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


async def register_user(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    role: str = "student",
) -> User:
    name = name.strip()
    email = normalize_email(email)

    if not name:
        raise ValidationError("Name is required")
    _validate_email(email)
    _validate_password(password)
    if role not in ROLES:
        raise ValidationError(f"Role must be one of {'|'.join(ROLES)}")

    repo = UserRepo(session)
    if await repo.get_by_email(email) is not None:
        logger.warning("Rejected duplicate registration email=%s", email)
        raise ConflictError("A user with this email already exists")

    try:
        user = await repo.add(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            created_at=datetime.now(UTC),
        )
    except ValueError:
        # Lost a race with a concurrent registration of the same email.
        raise ConflictError("A user with this email already exists") from None

    logger.info("User registered  user_id=%s email=%s role=%s", user.id, email, role)
    return user


async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    """Return the user for valid credentials.

    Unknown email -> NotFoundError (404), wrong password ->
    AuthenticationError (401), as the web client expects.
    """
    email = normalize_email(email)
    repo = UserRepo(session)

    user = await repo.get_by_email(email)
    if user is None:
        logger.warning("Login failed, unknown email=%s", email)
        raise NotFoundError("User not found")
    if not verify_password(password, user.password_hash):
        logger.warning("Login failed, wrong password user_id=%s", user.id)
        raise AuthenticationError("Incorrect password")

    try:
        if _ph.check_needs_rehash(user.password_hash):
            await repo.update_password_hash(user.id, _ph.hash(password))
            logger.info("Rehashed password for user=%s", user.id)
    except InvalidHash:
        raise AuthenticationError("Incorrect password") from None

    return user


async def get_profile(session: AsyncSession, user_id: int) -> User:
    user = await UserRepo(session).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_profile(
    session: AsyncSession,
    user_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
) -> User:
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Name must not be empty")
    if email is not None:
        email = normalize_email(email)
        _validate_email(email)

    try:
        user = await UserRepo(session).update_profile(user_id, name=name, email=email)
    except ValueError:
        raise ConflictError("That email is already in use") from None
    if user is None:
        raise NotFoundError("User not found")

    logger.info("Profile updated  user_id=%s", user_id)
    return user


async def change_password(
    session: AsyncSession,
    user_id: int,
    *,
    current_password: str,
    new_password: str,
) -> None:
    repo = UserRepo(session)
    user = await repo.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not verify_password(current_password, user.password_hash):
        logger.warning(
            "Password change rejected, wrong current password user_id=%s", user_id
        )
        raise AuthenticationError("Current password is incorrect")
    _validate_password(new_password)

    await repo.update_password_hash(user_id, hash_password(new_password))
    logger.info("Password changed  user_id=%s", user_id)
