"""Session inspection: read, update and destroy the content bound to the request token."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from token_session.api.deps import destroy_session, get_session, get_token_context
from token_session.services.token_rotator import TokenContext

router = APIRouter(prefix="/session", tags=["session"])


class SessionOut(BaseModel):
    is_new: bool
    data: dict[str, Any]


class ValueBody(BaseModel):
    value: Any


@router.get("", response_model=SessionOut, summary="Get session content for the presented token")
async def read_session(
    ctx: Annotated[TokenContext, Depends(get_token_context)],
    data: Annotated[dict[str, Any], Depends(get_session)],
) -> SessionOut:
    return SessionOut(is_new=ctx.is_new, data=data)


@router.put("/{key}", response_model=SessionOut, summary="Set one session value")
async def set_session_value(
    key: str,
    body: ValueBody,
    ctx: Annotated[TokenContext, Depends(get_token_context)],
    data: Annotated[dict[str, Any], Depends(get_session)],
) -> SessionOut:
    data[key] = body.value
    return SessionOut(is_new=ctx.is_new, data=data)


@router.delete("", status_code=204, summary="Destroy session content")
async def delete_session(request: Request) -> None:
    destroy_session(request)
