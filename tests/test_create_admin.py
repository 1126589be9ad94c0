from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from course_platform.core.errors import ConflictError
from course_platform.services import auth_service
from scripts.create_admin import create_admin
from tests.conftest import run_with_db


def test_create_admin_stores_an_admin_account() -> None:
    async def scenario(factory: async_sessionmaker[AsyncSession]) -> None:
        user = await create_admin(
            factory, name="Ada", email="Ada@Example.com", password="s3cret-pw"
        )
        assert user.role == "admin"
        assert user.is_admin

        async with factory() as session:
            stored = await auth_service.authenticate_user(
                session, "ada@example.com", "s3cret-pw"
            )
        assert stored.id == user.id

    run_with_db(scenario)


def test_create_admin_refuses_a_taken_email() -> None:
    async def scenario(factory: async_sessionmaker[AsyncSession]) -> None:
        await create_admin(
            factory, name="Ada", email="ada@example.com", password="pw1234"
        )
        with pytest.raises(ConflictError):
            await create_admin(
                factory, name="Other", email="ada@example.com", password="pw1234"
            )

    run_with_db(scenario)
