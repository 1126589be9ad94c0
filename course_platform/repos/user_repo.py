"""SQLAlchemy repository for usuarios."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.db.tables import UserRow
from course_platform.models.user import User


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        row = await self._session.get(UserRow, user_id)
        return _row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def add(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: str,
        created_at: datetime,
    ) -> User:
        """Insert a user. Raises ValueError when the email is taken."""
        row = UserRow(
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            created_at=created_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("email already exists") from None
        return _row_to_user(row)

    async def update_profile(
        self, user_id: int, *, name: str | None = None, email: str | None = None
    ) -> User | None:
        """Apply a partial profile update. Raises ValueError when the email is taken."""
        values: dict[str, str] = {}
        if name is not None:
            values["name"] = name
        if email is not None:
            values["email"] = email
        if values:
            stmt = update(UserRow).where(UserRow.id == user_id).values(**values)
            try:
                async with self._session.begin_nested():
                    await self._session.execute(stmt)
            except IntegrityError:
                raise ValueError("email already exists") from None
        return await self._refetch(user_id)

    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(password_hash=password_hash)
        )
        await self._session.execute(stmt)

    async def list_all(self) -> list[User]:
        stmt = select(UserRow).order_by(UserRow.id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows]

    async def delete(self, user_id: int) -> bool:
        result = await self._session.execute(
            delete(UserRow).where(UserRow.id == user_id)
        )
        return result.rowcount > 0

    async def count(self) -> int:
        return (
            await self._session.execute(select(func.count(UserRow.id)))
        ).scalar_one()

    async def _refetch(self, user_id: int) -> User | None:
        stmt = (
            select(UserRow)
            .where(UserRow.id == user_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=row.created_at,
    )
