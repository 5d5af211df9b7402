"""Deletion of expired token bindings (and expired session content on the scheduled run)."""

import logging
import time

from token_session.core.metrics import BINDINGS_SWEPT
from token_session.services.session_store import SessionStore
from token_session.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class GarbageCollector:
    def __init__(self, store: TokenStore, session_store: SessionStore, *, session_max_lifetime: int):
        self.store = store
        self.session_store = session_store
        self.session_max_lifetime = session_max_lifetime

    async def sweep(self, now: int | None = None) -> int:
        """Delete bindings with expire <= now. Errors propagate."""
        now = int(time.time()) if now is None else now
        deleted = await self.store.delete_expired(now)
        if deleted:
            BINDINGS_SWEPT.inc(deleted)
            logger.info("Swept %d expired token binding(s)", deleted)
        return deleted

    async def sweep_on_open(self) -> int:
        """Best-effort sweep at the start of a request. Never raises."""
        try:
            return await self.sweep()
        except Exception as e:
            logger.warning("Token sweep at session open failed: %s", e)
            return 0

    async def scheduled_sweep(self) -> None:
        """Periodic job: expired bindings, then expired session content. Failures wait for the next cycle."""
        try:
            await self.sweep()
        except Exception as e:
            logger.exception("Scheduled token sweep failed: %s", e)
        try:
            await self.session_store.gc(self.session_max_lifetime)
        except Exception as e:
            logger.exception("Scheduled session GC failed: %s", e)
