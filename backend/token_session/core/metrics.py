from prometheus_client import Counter

TOKENS_ISSUED = Counter(
    "token_session_tokens_issued_total",
    "Tokens persisted at the end of a request",
    ["path"],
)
LOST_RACES = Counter(
    "token_session_lost_races_total",
    "Rotations whose conditional update matched no row",
)
TOKEN_ID_COLLISIONS = Counter(
    "token_session_token_id_collisions_total",
    "Generated token ids rejected by the primary key",
)
BINDINGS_SWEPT = Counter(
    "token_session_bindings_swept_total",
    "Expired token bindings deleted by garbage collection",
)
