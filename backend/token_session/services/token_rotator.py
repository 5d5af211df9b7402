"""Per-request token lifecycle: resolve, look up, bind session, rotate, persist.

A request carries its state in a TokenContext created by ``begin`` and handed
to ``commit`` exactly once when the request ends. Nothing request-specific is
kept on the rotator itself, so one instance serves all requests.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from token_session.core.metrics import LOST_RACES, TOKEN_ID_COLLISIONS, TOKENS_ISSUED
from token_session.core.tokens import generate_token_id, resolve_token
from token_session.services.session_store import SessionStore
from token_session.services.token_store import TokenStore, TokenStoreError

logger = logging.getLogger(__name__)


class TokenState(str, enum.Enum):
    NO_TOKEN = "no_token"
    ACTIVE = "active"
    STALE = "stale"


class TokenIdExhaustedError(TokenStoreError):
    """Every generated token id collided with an existing binding."""


class TokenPersistError(TokenStoreError):
    """The replacement token could not be stored; it must not be sent to the client."""


@dataclass
class TokenContext:
    state: TokenState
    session_id: str | None = None
    old_token_id: str | None = None
    token_id: str | None = None  # set by commit
    committed: bool = False

    @property
    def is_new(self) -> bool:
        return self.state is not TokenState.ACTIVE


class TokenRotator:
    def __init__(
        self,
        store: TokenStore,
        session_store: SessionStore,
        *,
        timeout: int,
        max_attempts: int = 10,
    ):
        self.store = store
        self.session_store = session_store
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def begin(self, query_value: str | None, header_value: str | None) -> TokenContext:
        """Resolve the presented token and find the session it is bound to."""
        token_id = resolve_token(query_value, header_value)
        if token_id is None:
            return TokenContext(state=TokenState.NO_TOKEN)
        session_id = await self.store.find_active(token_id)
        if session_id is None:
            logger.debug("Token %s… not active, starting a new session", token_id[:8])
            return TokenContext(state=TokenState.STALE)
        return TokenContext(state=TokenState.ACTIVE, session_id=session_id, old_token_id=token_id)

    def ensure_session_id(self, ctx: TokenContext) -> str:
        if ctx.session_id is None:
            ctx.session_id = self.session_store.allocate_new()
        return ctx.session_id

    async def commit(self, ctx: TokenContext) -> str:
        """Persist a fresh token for ctx's session and return it.

        Existing bindings are renamed in place; a rename that matches no row
        (lost race or expiry) falls back to inserting an independent binding
        for the same session. Raises TokenPersistError if nothing was stored.
        """
        if ctx.committed:
            raise RuntimeError("Token context already committed")
        ctx.committed = True
        session_id = self.ensure_session_id(ctx)
        try:
            if ctx.state is TokenState.ACTIVE and ctx.old_token_id:
                token_id = await self._rotate(ctx.old_token_id, session_id)
                if token_id is None:
                    LOST_RACES.inc()
                    logger.warning(
                        "Token %s… already consumed, issuing an independent token for the session",
                        ctx.old_token_id[:8],
                    )
                    token_id = await self._insert_new(session_id)
                    TOKENS_ISSUED.labels(path="fallback").inc()
                else:
                    TOKENS_ISSUED.labels(path="rename").inc()
            else:
                token_id = await self._insert_new(session_id)
                TOKENS_ISSUED.labels(path="insert").inc()
        except TokenPersistError:
            raise
        except Exception as e:
            logger.exception("Saving token for session failed: %s", e)
            raise TokenPersistError("Can't save the token.") from e
        ctx.token_id = token_id
        logger.debug("Issued token %s… (new=%s)", token_id[:8], ctx.is_new)
        return token_id

    def _expires_at(self) -> int:
        return int(time.time()) + self.timeout

    async def _insert_new(self, session_id: str) -> str:
        for _ in range(self.max_attempts):
            token_id = generate_token_id()
            if await self.store.insert(token_id, self._expires_at(), session_id):
                return token_id
            TOKEN_ID_COLLISIONS.inc()
            logger.warning("Token id collision on insert, regenerating")
        raise TokenIdExhaustedError(f"No free token id after {self.max_attempts} attempts")

    async def _rotate(self, old_token_id: str, session_id: str) -> str | None:
        """Rename old_token_id to a fresh id. None if the old binding is gone."""
        for _ in range(self.max_attempts):
            token_id = generate_token_id()
            try:
                rows = await self.store.rename_binding(old_token_id, token_id, self._expires_at(), session_id)
            except IntegrityError:
                TOKEN_ID_COLLISIONS.inc()
                logger.warning("Token id collision on rename, regenerating")
                continue
            return token_id if rows else None
        raise TokenIdExhaustedError(f"No free token id after {self.max_attempts} attempts")
