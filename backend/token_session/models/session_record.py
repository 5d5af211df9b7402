"""Server-side session content keyed by the internal session id."""

from sqlalchemy import CHAR, JSON, Integer
from sqlalchemy.orm import Mapped, mapped_column

from token_session.config import settings
from token_session.db.base import Base


class SessionRecord(Base):
    __tablename__ = settings.session_table_name

    id: Mapped[str] = mapped_column(CHAR(32), primary_key=True)
    expire: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
