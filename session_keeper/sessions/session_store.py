# session_keeper/sessions/session_store.py
import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from ..settings import Settings, settings as keeper_global_settings
from .errors import SessionFieldNotFoundError, SessionStoreError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "session:"
DEFAULT_ROTATION_KEY_PREFIX = "session-rotation:"


def _ttl_seconds(ttl: timedelta) -> int:
    # Redis expiry has whole-second resolution; never round a positive TTL down to zero
    return max(1, int(ttl.total_seconds()))


class AbstractSessionStore(ABC):
    """
    Key-value capability consumed by the session manager.

    Each session is a hash of string fields stored under a namespaced key.
    Setting fields and applying a TTL are separate, non-atomic calls.
    Implementations must be safe for concurrent use by multiple requests.
    """

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX, rotation_key_prefix: str = DEFAULT_ROTATION_KEY_PREFIX):
        # Rotation claims live in their own namespace; a presented token must never address one
        if key_prefix.startswith(rotation_key_prefix) or rotation_key_prefix.startswith(key_prefix):
            raise ValueError(
                f"Key prefix '{key_prefix}' and rotation key prefix '{rotation_key_prefix}' must not overlap."
            )
        self.key_prefix = key_prefix
        self.rotation_key_prefix = rotation_key_prefix

    @abstractmethod
    async def hset(self, session_id: str, fields: Dict[str, str]) -> None:
        """Upsert one or more fields of a session."""
        pass

    @abstractmethod
    async def hget(self, session_id: str, field: str) -> str:
        """
        Read a single field.

        Raises SessionFieldNotFoundError when the session or field is absent
        and SessionStoreError for any other failure.
        """
        pass

    @abstractmethod
    async def hgetall(self, session_id: str) -> Dict[str, str]:
        """Read every field of a session. An absent session yields an empty dict."""
        pass

    @abstractmethod
    async def hdel(self, session_id: str, field: str) -> None:
        """Remove a single field. Absent fields are ignored."""
        pass

    @abstractmethod
    async def expire(self, session_id: str, ttl: timedelta) -> None:
        """Set or refresh the session's expiry. A no-op when the session is absent."""
        pass

    @abstractmethod
    async def clear(self, session_id: str) -> None:
        """Delete the whole session. Idempotent."""
        pass

    @abstractmethod
    async def claim_rotation(self, session_id: str, new_session_id: str, ttl: timedelta) -> bool:
        """
        Record new_session_id as the successor of session_id unless another
        request already did. Returns True when this caller holds the claim.
        """
        pass

    @abstractmethod
    async def get_rotation_claim(self, session_id: str) -> Optional[str]:
        """Return the successor recorded by claim_rotation, if any."""
        pass

    @abstractmethod
    async def release_rotation(self, session_id: str, new_session_id: str) -> bool:
        """
        Withdraw a claim made by claim_rotation, but only while it still names
        new_session_id. Returns True when a claim was removed.
        """
        pass

    async def initialize(self) -> None:
        """Prepare backend resources."""
        pass

    async def teardown(self) -> None:
        """Release backend resources."""
        pass

    def _construct_key(self, session_id: str) -> str:
        if not session_id:
            raise ValueError("session_id is required to construct a session key.")
        return f"{self.key_prefix}{session_id}"

    def _construct_rotation_key(self, session_id: str) -> str:
        if not session_id:
            raise ValueError("session_id is required to construct a rotation key.")
        return f"{self.rotation_key_prefix}{session_id}"

    # JSON-valued field helpers built on the hash primitives

    async def save_value(self, session_id: str, field: str, value: Any) -> None:
        """Store a JSON-serializable value in a single session field."""
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise SessionStoreError("SAVE", session_id, detail=f"failed to marshal value for '{field}': {e}") from e
        await self.hset(session_id, {field: encoded})

    async def load_value(self, session_id: str, field: str) -> str:
        """Load the raw stored string of a single session field."""
        return await self.hget(session_id, field)

    async def load_json(self, session_id: str, field: str) -> Any:
        """Load and decode a field previously written with save_value."""
        raw = await self.hget(session_id, field)
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SessionStoreError("LOAD", session_id, detail=f"failed to unmarshal value for '{field}': {e}") from e

    async def delete_value(self, session_id: str, field: str) -> None:
        """Remove a single field from the session."""
        await self.hdel(session_id, field)


class RedisSessionStore(AbstractSessionStore):
    """
    Redis-backed session store using one hash per session.

    The client's connection pool is shared by all concurrent resolutions.
    """

    def __init__(
        self,
        key_prefix: Optional[str] = None,
        redis_client: Optional[aioredis.Redis] = None,
        config: Optional[Settings] = None,
        rotation_key_prefix: Optional[str] = None,
    ):
        self._config = config or keeper_global_settings
        super().__init__(
            key_prefix if key_prefix is not None else self._config.session_key_prefix,
            rotation_key_prefix if rotation_key_prefix is not None else self._config.session_rotation_key_prefix,
        )
        self._redis_client: Optional[aioredis.Redis] = redis_client
        self._owns_client = redis_client is None
        logger.info(f"RedisSessionStore initialized. Key prefix: '{self.key_prefix}'")

    async def initialize(self) -> None:
        """
        Connects to Redis using the configured pool settings.
        Skips initialization if a client already exists.
        """
        if self._redis_client:
            logger.warning("Redis client already initialized. Skipping re-initialization.")
            return

        connection_params: Dict[str, Any] = {
            "host": self._config.redis_host,
            "port": self._config.redis_port,
            "db": self._config.redis_db,
            "decode_responses": True,
            "max_connections": self._config.redis_pool_size,
            "socket_connect_timeout": self._config.redis_connect_timeout_seconds,
            "socket_timeout": self._config.redis_socket_timeout_seconds,
        }
        if self._config.redis_password:
            connection_params["password"] = self._config.redis_password
        if self._config.redis_ssl:
            connection_params["ssl"] = True

        logger.info(
            f"Connecting to Redis at {connection_params['host']}:"
            f"{connection_params['port']}, DB: {connection_params['db']}, "
            f"pool size: {connection_params['max_connections']}, TLS: {self._config.redis_ssl}"
        )

        try:
            self._redis_client = aioredis.Redis(**connection_params)
            await self._redis_client.ping()
            self._owns_client = True
            logger.info("Successfully connected to Redis and pinged.")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            self._redis_client = None
            raise

    async def teardown(self) -> None:
        if self._redis_client and self._owns_client:
            logger.info("Closing Redis connection.")
            await self._redis_client.aclose()
            self._redis_client = None
            logger.info("Redis connection closed.")
        else:
            logger.info("No owned Redis connection to close.")

    def _get_client(self) -> aioredis.Redis:
        if not self._redis_client:
            logger.error("Redis client not initialized. Call initialize() first.")
            raise RuntimeError("RedisSessionStore not initialized. Call initialize() first.")
        return self._redis_client

    async def hset(self, session_id: str, fields: Dict[str, str]) -> None:
        if not fields:
            return
        key = self._construct_key(session_id)
        try:
            await self._get_client().hset(key, mapping=fields)
        except RedisError as e:
            logger.error(f"hset: Redis error for session {session_id[:8]}...: {e}")
            raise SessionStoreError("HSET", session_id, detail=str(e)) from e

    async def hget(self, session_id: str, field: str) -> str:
        key = self._construct_key(session_id)
        try:
            value = await self._get_client().hget(key, field)
        except RedisError as e:
            logger.error(f"hget: Redis error reading '{field}': {e}")
            raise SessionStoreError("HGET", session_id, detail=str(e)) from e
        if value is None:
            raise SessionFieldNotFoundError(session_id, field)
        return value

    async def hgetall(self, session_id: str) -> Dict[str, str]:
        key = self._construct_key(session_id)
        try:
            return dict(await self._get_client().hgetall(key))
        except RedisError as e:
            logger.error(f"hgetall: Redis error: {e}")
            raise SessionStoreError("HGETALL", session_id, detail=str(e)) from e

    async def hdel(self, session_id: str, field: str) -> None:
        key = self._construct_key(session_id)
        try:
            await self._get_client().hdel(key, field)
        except RedisError as e:
            logger.error(f"hdel: Redis error deleting '{field}': {e}")
            raise SessionStoreError("HDEL", session_id, detail=str(e)) from e

    async def expire(self, session_id: str, ttl: timedelta) -> None:
        key = self._construct_key(session_id)
        try:
            await self._get_client().expire(key, _ttl_seconds(ttl))
        except RedisError as e:
            logger.error(f"expire: Redis error: {e}")
            raise SessionStoreError("EXPIRE", session_id, detail=str(e)) from e

    async def clear(self, session_id: str) -> None:
        key = self._construct_key(session_id)
        try:
            deleted_count = await self._get_client().delete(key)
        except RedisError as e:
            logger.error(f"clear: Redis error: {e}")
            raise SessionStoreError("CLEAR", session_id, detail=str(e)) from e
        if deleted_count:
            logger.debug(f"clear: Session {session_id[:8]}... deleted.")
        else:
            logger.debug(f"clear: No session {session_id[:8]}... to delete.")

    async def claim_rotation(self, session_id: str, new_session_id: str, ttl: timedelta) -> bool:
        key = self._construct_rotation_key(session_id)
        try:
            result = await self._get_client().set(key, new_session_id, nx=True, ex=_ttl_seconds(ttl))
        except RedisError as e:
            logger.error(f"claim_rotation: Redis error: {e}")
            raise SessionStoreError("SET NX", session_id, detail=str(e)) from e
        return bool(result)

    async def get_rotation_claim(self, session_id: str) -> Optional[str]:
        key = self._construct_rotation_key(session_id)
        try:
            return await self._get_client().get(key)
        except RedisError as e:
            logger.error(f"get_rotation_claim: Redis error: {e}")
            raise SessionStoreError("GET", session_id, detail=str(e)) from e

    async def release_rotation(self, session_id: str, new_session_id: str) -> bool:
        key = self._construct_rotation_key(session_id)
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                # WATCH makes the compare-and-delete atomic against a competing claim
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != new_session_id:
                    await pipe.reset()
                    return False
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
        except WatchError:
            logger.info(f"release_rotation: Claim for {session_id[:8]}... changed while releasing; left in place.")
            return False
        except RedisError as e:
            logger.error(f"release_rotation: Redis error: {e}")
            raise SessionStoreError("RELEASE", session_id, detail=str(e)) from e
        return True

    async def ttl(self, session_id: str) -> int:
        """Remaining lifetime in seconds, as reported by Redis (-2 absent, -1 no expiry)."""
        key = self._construct_key(session_id)
        try:
            return await self._get_client().ttl(key)
        except RedisError as e:
            raise SessionStoreError("TTL", session_id, detail=str(e)) from e
