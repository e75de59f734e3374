from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError

from session_keeper.sessions import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionFieldNotFoundError,
    SessionStoreError,
)


# =============================================================================
# InMemorySessionStore
# =============================================================================

@pytest.mark.asyncio
async def test_memory_hset_and_hgetall(memory_store):
    await memory_store.hset("abc", {"created_at": "1", "user": "alice"})
    await memory_store.hset("abc", {"user": "bob"})

    assert await memory_store.hgetall("abc") == {"created_at": "1", "user": "bob"}


@pytest.mark.asyncio
async def test_memory_hget_missing_session_and_field(memory_store):
    with pytest.raises(SessionFieldNotFoundError):
        await memory_store.hget("absent", "created_at")

    await memory_store.hset("abc", {"user": "alice"})
    with pytest.raises(SessionFieldNotFoundError):
        await memory_store.hget("abc", "created_at")


@pytest.mark.asyncio
async def test_memory_hgetall_absent_session_is_empty(memory_store):
    assert await memory_store.hgetall("absent") == {}


@pytest.mark.asyncio
async def test_memory_clear_is_idempotent(memory_store):
    await memory_store.hset("abc", {"user": "alice"})

    await memory_store.clear("abc")
    await memory_store.clear("abc")

    assert await memory_store.hgetall("abc") == {}


@pytest.mark.asyncio
async def test_memory_expire_removes_session_after_ttl(memory_store, clock):
    await memory_store.hset("abc", {"user": "alice"})
    await memory_store.expire("abc", timedelta(seconds=60))

    clock.advance(59)
    assert await memory_store.hget("abc", "user") == "alice"
    assert await memory_store.ttl("abc") == 1

    clock.advance(1)
    assert await memory_store.hgetall("abc") == {}
    assert await memory_store.ttl("abc") == -2


@pytest.mark.asyncio
async def test_memory_expire_on_absent_session_is_noop(memory_store):
    await memory_store.expire("absent", timedelta(seconds=60))

    assert await memory_store.hgetall("absent") == {}


@pytest.mark.asyncio
async def test_memory_ttl_without_expiry(memory_store):
    await memory_store.hset("abc", {"user": "alice"})

    assert await memory_store.ttl("abc") == -1


@pytest.mark.asyncio
async def test_memory_claim_rotation_single_winner(memory_store, clock):
    assert await memory_store.claim_rotation("old", "new-1", timedelta(seconds=10)) is True
    assert await memory_store.claim_rotation("old", "new-2", timedelta(seconds=10)) is False
    assert await memory_store.get_rotation_claim("old") == "new-1"

    clock.advance(10)
    assert await memory_store.get_rotation_claim("old") is None
    assert await memory_store.claim_rotation("old", "new-3", timedelta(seconds=10)) is True


@pytest.mark.asyncio
async def test_memory_release_rotation_only_removes_own_claim(memory_store):
    await memory_store.claim_rotation("old", "new-1", timedelta(seconds=10))

    assert await memory_store.release_rotation("old", "new-2") is False
    assert await memory_store.get_rotation_claim("old") == "new-1"

    assert await memory_store.release_rotation("old", "new-1") is True
    assert await memory_store.get_rotation_claim("old") is None
    assert await memory_store.release_rotation("old", "new-1") is False


@pytest.mark.asyncio
async def test_memory_expired_entries_swept_on_write(memory_store, clock):
    for session_id in ("a", "b", "c"):
        await memory_store.hset(session_id, {"user": session_id})
        await memory_store.expire(session_id, timedelta(seconds=60))
        await memory_store.claim_rotation(session_id, f"{session_id}-next", timedelta(seconds=10))
    assert len(memory_store._hashes) == 3
    assert len(memory_store._strings) == 3

    clock.advance(61)
    # None of the abandoned keys is read again; a write elsewhere evicts them
    await memory_store.hset("fresh", {"user": "dave"})

    assert list(memory_store._hashes) == ["session:fresh"]
    assert memory_store._expiry == {}
    assert memory_store._strings == {}


@pytest.mark.asyncio
async def test_token_cannot_address_rotation_claim(memory_store):
    await memory_store.claim_rotation("abc", "next", timedelta(seconds=10))

    # A token shaped like a claim key still lands in the session namespace
    await memory_store.hset("rotation:abc", {"user": "mallory"})
    await memory_store.expire("rotation:abc", timedelta(hours=1))
    await memory_store.clear("rotation:abc")

    assert await memory_store.get_rotation_claim("abc") == "next"
    assert memory_store._construct_rotation_key("abc") == "session-rotation:abc"


def test_overlapping_prefixes_rejected():
    with pytest.raises(ValueError):
        InMemorySessionStore(key_prefix="session:", rotation_key_prefix="session:rotation:")
    with pytest.raises(ValueError):
        InMemorySessionStore(key_prefix="sess", rotation_key_prefix="sess-rotation:")


@pytest.mark.asyncio
async def test_json_value_helpers(memory_store):
    await memory_store.save_value("abc", "cart", {"items": [1, 2]})

    assert await memory_store.load_value("abc", "cart") == '{"items": [1, 2]}'
    assert await memory_store.load_json("abc", "cart") == {"items": [1, 2]}

    await memory_store.delete_value("abc", "cart")
    with pytest.raises(SessionFieldNotFoundError):
        await memory_store.load_json("abc", "cart")


@pytest.mark.asyncio
async def test_load_json_rejects_non_json(memory_store):
    await memory_store.hset("abc", {"raw": "not json"})

    with pytest.raises(SessionStoreError):
        await memory_store.load_json("abc", "raw")


@pytest.mark.asyncio
async def test_save_value_rejects_unserializable(memory_store):
    with pytest.raises(SessionStoreError):
        await memory_store.save_value("abc", "bad", object())


# =============================================================================
# RedisSessionStore
# =============================================================================

@pytest.fixture
def redis_store(mock_redis):
    return RedisSessionStore(key_prefix="session:", redis_client=mock_redis)


@pytest.mark.asyncio
async def test_redis_hset_uses_namespaced_key(redis_store, mock_redis):
    await redis_store.hset("abc", {"created_at": "1"})

    mock_redis.hset.assert_awaited_once_with("session:abc", mapping={"created_at": "1"})


@pytest.mark.asyncio
async def test_redis_hset_empty_mapping_skipped(redis_store, mock_redis):
    await redis_store.hset("abc", {})

    mock_redis.hset.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_hget_missing_raises_not_found(redis_store, mock_redis):
    mock_redis.hget.return_value = None

    with pytest.raises(SessionFieldNotFoundError):
        await redis_store.hget("abc", "created_at")
    mock_redis.hget.assert_awaited_once_with("session:abc", "created_at")


@pytest.mark.asyncio
async def test_redis_hget_returns_value(redis_store, mock_redis):
    mock_redis.hget.return_value = "1700000000"

    assert await redis_store.hget("abc", "created_at") == "1700000000"


@pytest.mark.asyncio
async def test_redis_expire_converts_ttl_to_seconds(redis_store, mock_redis):
    await redis_store.expire("abc", timedelta(hours=1))

    mock_redis.expire.assert_awaited_once_with("session:abc", 3600)


@pytest.mark.asyncio
async def test_redis_clear_absent_session_succeeds(redis_store, mock_redis):
    mock_redis.delete.return_value = 0

    await redis_store.clear("abc")

    mock_redis.delete.assert_awaited_once_with("session:abc")


@pytest.mark.asyncio
async def test_redis_errors_wrapped_as_store_errors(redis_store, mock_redis):
    mock_redis.expire.side_effect = RedisConnectionError("connection refused")
    mock_redis.hget.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(SessionStoreError) as exc_info:
        await redis_store.expire("abc", timedelta(seconds=60))
    assert exc_info.value.operation == "EXPIRE"

    with pytest.raises(SessionStoreError) as exc_info:
        await redis_store.hget("abc", "created_at")
    assert not isinstance(exc_info.value, SessionFieldNotFoundError)


@pytest.mark.asyncio
async def test_redis_claim_rotation_uses_set_nx(redis_store, mock_redis):
    mock_redis.set.return_value = True
    assert await redis_store.claim_rotation("old", "new", timedelta(seconds=10)) is True
    mock_redis.set.assert_awaited_once_with("session-rotation:old", "new", nx=True, ex=10)

    mock_redis.set.return_value = None
    assert await redis_store.claim_rotation("old", "other", timedelta(seconds=10)) is False


@pytest.mark.asyncio
async def test_redis_get_rotation_claim(redis_store, mock_redis):
    mock_redis.get.return_value = "new"

    assert await redis_store.get_rotation_claim("old") == "new"
    mock_redis.get.assert_awaited_once_with("session-rotation:old")


def _watch_pipeline(mock_redis, current):
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=current)
    pipe.reset = AsyncMock()
    pipe.execute = AsyncMock(return_value=[1])
    mock_redis.pipeline = MagicMock(return_value=pipe)
    return pipe


@pytest.mark.asyncio
async def test_redis_release_rotation_deletes_matching_claim(redis_store, mock_redis):
    pipe = _watch_pipeline(mock_redis, current="new")

    assert await redis_store.release_rotation("old", "new") is True

    pipe.watch.assert_awaited_once_with("session-rotation:old")
    pipe.multi.assert_called_once()
    pipe.delete.assert_called_once_with("session-rotation:old")
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_release_rotation_leaves_foreign_claim(redis_store, mock_redis):
    pipe = _watch_pipeline(mock_redis, current="someone-else")

    assert await redis_store.release_rotation("old", "new") is False

    pipe.delete.assert_not_called()
    pipe.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_release_rotation_lost_race(redis_store, mock_redis):
    pipe = _watch_pipeline(mock_redis, current="new")
    pipe.execute.side_effect = WatchError("claim changed")

    assert await redis_store.release_rotation("old", "new") is False


@pytest.mark.asyncio
async def test_redis_release_rotation_error_wrapped(redis_store, mock_redis):
    pipe = _watch_pipeline(mock_redis, current="new")
    pipe.watch.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(SessionStoreError) as exc_info:
        await redis_store.release_rotation("old", "new")
    assert exc_info.value.operation == "RELEASE"


@pytest.mark.asyncio
async def test_redis_uninitialized_store_raises():
    store = RedisSessionStore(key_prefix="session:")

    with pytest.raises(RuntimeError):
        await store.hgetall("abc")


@pytest.mark.asyncio
async def test_redis_injected_client_not_closed_on_teardown(redis_store, mock_redis):
    await redis_store.teardown()

    mock_redis.aclose.assert_not_awaited()
