#!/usr/bin/env python3
"""Create the first administrator account.

Registering an admin over HTTP needs an admin token, so a fresh
database has to be bootstrapped from the command line:

    python -m scripts.create_admin --name "Ada" --email ada@example.com

The password is read from the ADMIN_PASSWORD environment variable, or
prompted for when that is unset.  Uses DATABASE_URL like the API does.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from course_platform.core.config import SETTINGS
from course_platform.core.errors import ServiceError
from course_platform.core.logging import setup_logging
from course_platform.db.engine import async_session_factory, create_all, engine
from course_platform.models.user import User
from course_platform.services import auth_service

logger = logging.getLogger("create_admin")


async def create_admin(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    name: str,
    email: str,
    password: str,
) -> User:
    async with session_factory() as session:
        async with session.begin():
            return await auth_service.register_user(
                session, name=name, email=email, password=password, role="admin"
            )


async def _run(args: argparse.Namespace, password: str) -> int:
    try:
        if SETTINGS.db_create_all:
            await create_all(engine)
        user = await create_admin(
            async_session_factory, name=args.name, email=args.email, password=password
        )
    except ServiceError as e:
        logger.error("Could not create admin: %s", e.message)
        return 1
    finally:
        await engine.dispose()

    logger.info("Admin created  user_id=%s email=%s", user.id, user.email)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Password: ")
    return asyncio.run(_run(args, password))


if __name__ == "__main__":
    sys.exit(main())
