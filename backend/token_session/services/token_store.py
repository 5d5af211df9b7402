"""Persistence of token bindings.

Every operation runs in its own short transaction; the database is the only
coordination point between concurrent requests. A missing binding table is
created on first failing access (when auto_create_token_table is on) and the
operation is retried once.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from token_session.models.token_binding import TokenBinding

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenStoreError(Exception):
    """Base error for token persistence."""


class TokenSchemaError(TokenStoreError):
    """Binding table is missing and could not be (or may not be) created."""


class TokenStore:
    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        auto_create_table: bool = True,
    ):
        self.engine = engine
        self.session_maker = session_maker
        self.auto_create_table = auto_create_table

    async def ensure_schema(self) -> None:
        """Create the binding table if it does not exist. Idempotent."""
        async with self.engine.begin() as conn:
            await conn.run_sync(TokenBinding.__table__.create, checkfirst=True)
        logger.info("Token table %s ensured", TokenBinding.__tablename__)

    async def _with_schema(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except (OperationalError, ProgrammingError) as e:
            if not self.auto_create_table:
                raise TokenSchemaError(f"Token table {TokenBinding.__tablename__} is not usable: {e}") from e
            logger.warning("Token table access failed (%s), creating table and retrying", e.__class__.__name__)
            await self.ensure_schema()
        try:
            return await operation()
        except (OperationalError, ProgrammingError) as e:
            raise TokenSchemaError(f"Token table {TokenBinding.__tablename__} is not usable: {e}") from e

    async def find_active(self, token_id: str, now: int | None = None) -> str | None:
        """Return the session id bound to token_id if the binding exists and has not expired."""
        now = int(time.time()) if now is None else now

        async def _op() -> str | None:
            async with self.session_maker() as session:
                r = await session.execute(
                    select(TokenBinding.session_id)
                    .where(TokenBinding.id == token_id, TokenBinding.expire > now)
                    .limit(1)
                )
                return r.scalar_one_or_none()

        return await self._with_schema(_op)

    async def insert(self, token_id: str, expires_at: int, session_id: str) -> bool:
        """Insert a new binding. False means token_id is already taken; the caller regenerates."""

        async def _op() -> bool:
            try:
                async with self.session_maker() as session, session.begin():
                    session.add(TokenBinding(id=token_id, expire=expires_at, session_id=session_id))
            except IntegrityError:
                return False
            return True

        return await self._with_schema(_op)

    async def rename_binding(
        self,
        old_token_id: str,
        new_token_id: str,
        new_expires_at: int,
        session_id: str,
        now: int | None = None,
    ) -> int:
        """Swap old_token_id for new_token_id in one conditional update.

        Returns the number of rows changed. 0 means the old binding was already
        consumed by a concurrent request or has expired. Raises IntegrityError
        when new_token_id collides with an existing binding.
        """
        now = int(time.time()) if now is None else now

        async def _op() -> int:
            async with self.session_maker() as session, session.begin():
                result = await session.execute(
                    update(TokenBinding)
                    .where(TokenBinding.id == old_token_id, TokenBinding.expire > now)
                    .values(id=new_token_id, expire=new_expires_at, session_id=session_id)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

        return await self._with_schema(_op)

    async def delete_expired(self, now: int | None = None) -> int:
        """Delete every binding with expire <= now. Returns count removed."""
        now = int(time.time()) if now is None else now

        async def _op() -> int:
            async with self.session_maker() as session, session.begin():
                result = await session.execute(
                    delete(TokenBinding)
                    .where(TokenBinding.expire <= now)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

        return await self._with_schema(_op)
