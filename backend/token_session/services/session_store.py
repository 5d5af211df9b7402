"""Session content store: arbitrary key/value data keyed by an internal session id.

The token layer only hands session ids to this store and asks it for new ones;
it never inspects the payload.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from token_session.models.session_record import SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def open(self, session_id: str) -> bool: ...

    def allocate_new(self) -> str: ...

    async def read(self, session_id: str) -> dict[str, Any]: ...

    async def write(self, session_id: str, data: dict[str, Any]) -> None: ...

    async def destroy(self, session_id: str) -> None: ...

    async def gc(self, max_lifetime: int) -> int: ...


class DbSessionStore:
    """SessionStore backed by the SessionRecord table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], timeout: int):
        self.session_maker = session_maker
        self.timeout = timeout

    async def open(self, session_id: str) -> bool:
        """True if content exists for session_id and has not expired."""
        async with self.session_maker() as session:
            r = await session.execute(
                select(SessionRecord.id).where(
                    SessionRecord.id == session_id,
                    SessionRecord.expire > int(time.time()),
                )
            )
            return r.scalar_one_or_none() is not None

    def allocate_new(self) -> str:
        """New session id. Nothing is stored until the first write."""
        return secrets.token_hex(16)

    async def read(self, session_id: str) -> dict[str, Any]:
        async with self.session_maker() as session:
            r = await session.execute(
                select(SessionRecord.data).where(
                    SessionRecord.id == session_id,
                    SessionRecord.expire > int(time.time()),
                )
            )
            data = r.scalar_one_or_none()
        return dict(data) if data else {}

    async def write(self, session_id: str, data: dict[str, Any]) -> None:
        expire = int(time.time()) + self.timeout
        async with self.session_maker() as session, session.begin():
            row = await session.get(SessionRecord, session_id)
            if row is None:
                session.add(SessionRecord(id=session_id, expire=expire, data=dict(data)))
            else:
                row.expire = expire
                row.data = dict(data)

    async def destroy(self, session_id: str) -> None:
        async with self.session_maker() as session, session.begin():
            await session.execute(delete(SessionRecord).where(SessionRecord.id == session_id))

    async def gc(self, max_lifetime: int) -> int:
        """Delete content not written for max_lifetime seconds. Returns count removed."""
        # expire is stamped as last write + timeout
        cutoff = int(time.time()) - max_lifetime + self.timeout
        async with self.session_maker() as session, session.begin():
            result = await session.execute(
                delete(SessionRecord)
                .where(SessionRecord.expire <= cutoff)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            logger.info("Session GC removed %d expired session(s) (max_lifetime=%ds)", result.rowcount, max_lifetime)
        return result.rowcount
