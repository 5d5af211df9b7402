from token_session.db.session import async_session_maker, engine, init_db
from token_session.db.base import Base

__all__ = ["Base", "async_session_maker", "engine", "init_db"]
