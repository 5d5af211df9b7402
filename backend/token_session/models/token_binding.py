"""Token -> session binding, one row per active token."""

from sqlalchemy import CHAR, Integer
from sqlalchemy.orm import Mapped, mapped_column

from token_session.config import settings
from token_session.db.base import Base


class TokenBinding(Base):
    __tablename__ = settings.token_table_name

    id: Mapped[str] = mapped_column(CHAR(32), primary_key=True)
    expire: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(CHAR(32), nullable=False)
