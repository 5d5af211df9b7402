"""Cookie-less sessions: every response carries a fresh single-use token bound to the server-side session."""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from token_session.config import settings
from token_session.services import garbage_collector, session_store, token_rotator
from token_session.services.garbage_collector import GarbageCollector
from token_session.services.session_store import SessionStore
from token_session.services.token_rotator import TokenContext, TokenPersistError, TokenRotator

logger = logging.getLogger(__name__)

TOKEN_SAVE_FAILED = "Can't save the token."
INTERNAL_ERROR = "Internal Server Error"


def _is_exempt(path: str) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in settings.token_exempt_path_list)


class TokenSessionMiddleware(BaseHTTPMiddleware):
    """Resolves the request token before the handler runs and commits its replacement afterwards.

    Handlers see the session content as ``request.state.session`` (a dict) and the
    token state as ``request.state.token_context``. Setting
    ``request.state.session_destroyed`` drops the content and moves the client to a
    fresh session id. A handler error becomes a 500 response that still carries
    the replacement token, so the client keeps its session.
    """

    def __init__(
        self,
        app: ASGIApp,
        rotator: TokenRotator | None = None,
        store: SessionStore | None = None,
        collector: GarbageCollector | None = None,
    ):
        super().__init__(app)
        self.rotator = rotator or token_rotator
        self.store = store or session_store
        self.collector = collector or garbage_collector

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if _is_exempt(request.url.path):
            return await call_next(request)

        if settings.auto_create_token_table:
            await self.collector.sweep_on_open()

        ctx = await self.rotator.begin(
            request.query_params.get(settings.token_request_key_name),
            request.headers.get(settings.token_header_name),
        )
        request.state.token_context = ctx
        # None until loaded: content that was never read must not be written back
        request.state.session = None
        request.state.session_destroyed = False

        try:
            request.state.session = await self.store.read(ctx.session_id) if ctx.session_id else {}
            response = await call_next(request)
        except Exception as e:
            logger.exception("Request failed: %s", e)
            response = JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR})

        try:
            token_id = await self._finalize(request, ctx)
        except TokenPersistError:
            return JSONResponse(status_code=500, content={"detail": TOKEN_SAVE_FAILED})
        response.headers[settings.token_header_name] = token_id
        return response

    async def _finalize(self, request: Request, ctx: TokenContext) -> str:
        """Store session content, then persist the replacement token. Runs once per request."""
        data: dict | None = getattr(request.state, "session", None)
        try:
            if getattr(request.state, "session_destroyed", False):
                if ctx.session_id:
                    await self.store.destroy(ctx.session_id)
                ctx.session_id = None
            elif data is not None and (data or not ctx.is_new):
                await self.store.write(self.rotator.ensure_session_id(ctx), data)
        except Exception as e:
            logger.exception("Saving session content failed: %s", e)
        return await self.rotator.commit(ctx)
