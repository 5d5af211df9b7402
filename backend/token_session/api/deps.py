"""FastAPI dependencies: session content and token state set up by TokenSessionMiddleware."""

from typing import Any

from fastapi import HTTPException, Request

from token_session.services.token_rotator import TokenContext


def get_token_context(request: Request) -> TokenContext:
    ctx = getattr(request.state, "token_context", None)
    if ctx is None:
        raise HTTPException(status_code=500, detail="Token session middleware is not installed")
    return ctx


def get_session(request: Request) -> dict[str, Any]:
    """Mutable session content; changes are saved when the request ends."""
    get_token_context(request)
    return request.state.session


def destroy_session(request: Request) -> None:
    get_token_context(request)
    request.state.session = {}
    request.state.session_destroyed = True
