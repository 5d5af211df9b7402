"""Token id format: extraction from request carriers and generation."""

import re
import secrets

TOKEN_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")


def is_valid_token_id(value: str | None) -> bool:
    return bool(value) and TOKEN_ID_PATTERN.fullmatch(value) is not None


def resolve_token(query_value: str | None, header_value: str | None) -> str | None:
    """Return the first well-formed token id, query parameter before header.

    Malformed values count as absent; this never raises.
    """
    for candidate in (query_value, header_value):
        if is_valid_token_id(candidate):
            return candidate
    return None


def generate_token_id() -> str:
    """New 32-hex token id (128 bits from the OS CSPRNG). Caller must persist it and retry on conflict."""
    return secrets.token_hex(16)
