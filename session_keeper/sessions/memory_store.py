# session_keeper/sessions/memory_store.py
import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from .errors import SessionFieldNotFoundError
from .session_store import AbstractSessionStore, DEFAULT_KEY_PREFIX, DEFAULT_ROTATION_KEY_PREFIX

logger = logging.getLogger(__name__)


class InMemorySessionStore(AbstractSessionStore):
    """
    Process-local session store for development and tests.

    Expiry is evaluated lazily against the injected clock when a key is read,
    and every write sweeps all expired entries, so abandoned sessions and
    spent rotation claims do not accumulate. Every operation yields to the
    event loop once, standing in for a network round trip, so concurrent
    resolutions interleave the way they would against Redis.
    """

    def __init__(
        self,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
        rotation_key_prefix: str = DEFAULT_ROTATION_KEY_PREFIX,
    ):
        super().__init__(key_prefix, rotation_key_prefix)
        self._clock = clock
        # key -> fields
        self._hashes: Dict[str, Dict[str, str]] = {}
        # key -> (value, expires_at)
        self._strings: Dict[str, Tuple[str, Optional[float]]] = {}
        self._expiry: Dict[str, float] = {}

    async def _round_trip(self) -> None:
        await asyncio.sleep(0)

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._hashes.pop(key, None)
            self._expiry.pop(key, None)

    def _sweep_expired(self) -> None:
        now = self._clock()
        expired_hashes = [key for key, expires_at in self._expiry.items() if now >= expires_at]
        for key in expired_hashes:
            self._hashes.pop(key, None)
            self._expiry.pop(key, None)
        expired_strings = [
            key for key, (_, expires_at) in self._strings.items() if expires_at is not None and now >= expires_at
        ]
        for key in expired_strings:
            del self._strings[key]
        if expired_hashes or expired_strings:
            logger.debug(
                f"_sweep_expired: Evicted {len(expired_hashes)} session(s) and {len(expired_strings)} claim(s)."
            )

    def _live_hash(self, key: str) -> Optional[Dict[str, str]]:
        self._evict_if_expired(key)
        return self._hashes.get(key)

    async def hset(self, session_id: str, fields: Dict[str, str]) -> None:
        key = self._construct_key(session_id)
        await self._round_trip()
        self._sweep_expired()
        self._hashes.setdefault(key, {}).update({k: str(v) for k, v in fields.items()})

    async def hget(self, session_id: str, field: str) -> str:
        key = self._construct_key(session_id)
        await self._round_trip()
        fields = self._live_hash(key)
        if fields is None or field not in fields:
            raise SessionFieldNotFoundError(session_id, field)
        return fields[field]

    async def hgetall(self, session_id: str) -> Dict[str, str]:
        key = self._construct_key(session_id)
        await self._round_trip()
        return dict(self._live_hash(key) or {})

    async def hdel(self, session_id: str, field: str) -> None:
        key = self._construct_key(session_id)
        await self._round_trip()
        fields = self._live_hash(key)
        if fields is None:
            return
        fields.pop(field, None)
        if not fields:
            # Redis drops a hash once its last field is removed
            self._hashes.pop(key, None)
            self._expiry.pop(key, None)

    async def expire(self, session_id: str, ttl: timedelta) -> None:
        key = self._construct_key(session_id)
        await self._round_trip()
        if self._live_hash(key) is None:
            return
        self._expiry[key] = self._clock() + ttl.total_seconds()

    async def clear(self, session_id: str) -> None:
        key = self._construct_key(session_id)
        await self._round_trip()
        self._hashes.pop(key, None)
        self._expiry.pop(key, None)

    async def claim_rotation(self, session_id: str, new_session_id: str, ttl: timedelta) -> bool:
        key = self._construct_rotation_key(session_id)
        await self._round_trip()
        self._sweep_expired()
        if self._live_string(key) is not None:
            return False
        self._strings[key] = (new_session_id, self._clock() + ttl.total_seconds())
        return True

    async def get_rotation_claim(self, session_id: str) -> Optional[str]:
        key = self._construct_rotation_key(session_id)
        await self._round_trip()
        return self._live_string(key)

    async def release_rotation(self, session_id: str, new_session_id: str) -> bool:
        key = self._construct_rotation_key(session_id)
        await self._round_trip()
        if self._live_string(key) != new_session_id:
            return False
        del self._strings[key]
        return True

    def _live_string(self, key: str) -> Optional[str]:
        entry = self._strings.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._strings[key]
            return None
        return value

    async def ttl(self, session_id: str) -> int:
        """Remaining lifetime in whole seconds (-2 absent, -1 no expiry), mirroring Redis TTL."""
        key = self._construct_key(session_id)
        await self._round_trip()
        if self._live_hash(key) is None:
            return -2
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return -1
        return int(expires_at - self._clock())
