from token_session.models.session_record import SessionRecord
from token_session.models.token_binding import TokenBinding

__all__ = [
    "SessionRecord",
    "TokenBinding",
]
