"""Token binding persistence, rotation and garbage collection wired to the configured database."""

from token_session.config import settings
from token_session.db.session import async_session_maker, engine
from token_session.services.garbage_collector import GarbageCollector
from token_session.services.session_store import DbSessionStore
from token_session.services.token_rotator import TokenRotator
from token_session.services.token_store import TokenStore

token_store = TokenStore(engine, async_session_maker, auto_create_table=settings.auto_create_token_table)
session_store = DbSessionStore(async_session_maker, timeout=settings.session_timeout)
token_rotator = TokenRotator(
    token_store,
    session_store,
    timeout=settings.token_timeout,
    max_attempts=settings.token_id_max_attempts,
)
garbage_collector = GarbageCollector(token_store, session_store, session_max_lifetime=settings.session_timeout)

__all__ = ["garbage_collector", "session_store", "token_rotator", "token_store"]
