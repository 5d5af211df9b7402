"""Tests for the per-request token protocol: new sessions, rotation, lost races, id collisions."""

import time
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from token_session.core.tokens import is_valid_token_id
from token_session.services.token_rotator import TokenPersistError, TokenState

S1 = "1" * 32


@pytest.mark.asyncio
async def test_no_token_creates_new_binding(rotator, token_store):
    ctx = await rotator.begin(None, None)
    assert ctx.state is TokenState.NO_TOKEN
    assert ctx.is_new
    token = await rotator.commit(ctx)
    assert is_valid_token_id(token)
    assert ctx.session_id is not None
    assert await token_store.find_active(token) == ctx.session_id


@pytest.mark.asyncio
async def test_new_sessions_get_distinct_tokens_and_ids(rotator):
    seen_tokens, seen_sessions = set(), set()
    for _ in range(20):
        ctx = await rotator.begin(None, None)
        seen_tokens.add(await rotator.commit(ctx))
        seen_sessions.add(ctx.session_id)
    assert len(seen_tokens) == 20
    assert len(seen_sessions) == 20


@pytest.mark.asyncio
async def test_active_token_is_rotated(rotator, token_store):
    old = "a" * 32
    await token_store.insert(old, int(time.time()) + 60, S1)

    ctx = await rotator.begin(old, None)
    assert ctx.state is TokenState.ACTIVE
    assert ctx.session_id == S1
    assert ctx.old_token_id == old
    assert not ctx.is_new

    new = await rotator.commit(ctx)
    assert new != old
    assert await token_store.find_active(old) is None
    assert await token_store.find_active(new) == S1


@pytest.mark.asyncio
async def test_token_from_header_carrier(rotator, token_store):
    old = "b" * 32
    await token_store.insert(old, int(time.time()) + 60, S1)
    ctx = await rotator.begin("garbage", old)
    assert ctx.state is TokenState.ACTIVE
    assert ctx.session_id == S1


@pytest.mark.asyncio
async def test_expired_token_treated_as_absent(rotator, token_store):
    old = "c" * 32
    await token_store.insert(old, int(time.time()) - 1, S1)
    ctx = await rotator.begin(old, None)
    assert ctx.state is TokenState.STALE
    assert ctx.is_new
    new = await rotator.commit(ctx)
    assert ctx.session_id != S1
    assert await token_store.find_active(new) == ctx.session_id


@pytest.mark.asyncio
async def test_unknown_token_treated_as_absent(rotator):
    ctx = await rotator.begin("d" * 32, None)
    assert ctx.state is TokenState.STALE
    assert ctx.session_id is None


@pytest.mark.asyncio
async def test_lost_race_falls_back_to_independent_binding(rotator, token_store):
    old = "e" * 32
    await token_store.insert(old, int(time.time()) + 60, S1)

    # Both requests look up the same token before either commits
    first = await rotator.begin(old, None)
    second = await rotator.begin(old, None)
    assert first.session_id == second.session_id == S1

    t1 = await rotator.commit(first)
    t2 = await rotator.commit(second)

    assert t1 != t2
    assert await token_store.find_active(old) is None
    assert await token_store.find_active(t1) == S1
    assert await token_store.find_active(t2) == S1


@pytest.mark.asyncio
async def test_insert_collision_regenerates(rotator, token_store):
    taken = "f" * 32
    fresh = "0" * 32
    await token_store.insert(taken, int(time.time()) + 60, S1)
    ctx = await rotator.begin(None, None)
    with patch(
        "token_session.services.token_rotator.generate_token_id",
        side_effect=[taken, fresh],
    ):
        token = await rotator.commit(ctx)
    assert token == fresh
    assert await token_store.find_active(fresh) == ctx.session_id
    assert await token_store.find_active(taken) == S1


@pytest.mark.asyncio
async def test_rename_collision_regenerates(rotator, token_store):
    old = "a" * 32
    taken = "b" * 32
    fresh = "c" * 32
    now = int(time.time())
    await token_store.insert(old, now + 60, S1)
    await token_store.insert(taken, now + 60, "2" * 32)
    ctx = await rotator.begin(old, None)
    with patch(
        "token_session.services.token_rotator.generate_token_id",
        side_effect=[taken, fresh],
    ):
        token = await rotator.commit(ctx)
    assert token == fresh
    assert await token_store.find_active(fresh) == S1
    assert await token_store.find_active(old) is None


@pytest.mark.asyncio
async def test_exhausted_collisions_fail_loudly(rotator, token_store):
    taken = "f" * 32
    await token_store.insert(taken, int(time.time()) + 60, S1)
    ctx = await rotator.begin(None, None)
    with patch("token_session.services.token_rotator.generate_token_id", return_value=taken):
        with pytest.raises(TokenPersistError):
            await rotator.commit(ctx)
    assert ctx.token_id is None


@pytest.mark.asyncio
async def test_persistence_failure_fails_loudly(rotator):
    ctx = await rotator.begin(None, None)
    with patch.object(
        rotator.store,
        "insert",
        AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))),
    ):
        with pytest.raises(TokenPersistError):
            await rotator.commit(ctx)


@pytest.mark.asyncio
async def test_commit_runs_once(rotator):
    ctx = await rotator.begin(None, None)
    await rotator.commit(ctx)
    with pytest.raises(RuntimeError):
        await rotator.commit(ctx)
