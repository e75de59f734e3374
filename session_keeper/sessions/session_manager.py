# session_keeper/sessions/session_manager.py
import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Optional

from .errors import SessionFieldNotFoundError, SessionStoreError
from .session_data import CREATED_AT_FIELD, SessionResolution
from .session_store import AbstractSessionStore
from .token_generator import AbstractSessionTokenGenerator, SecureSessionTokenGenerator

logger = logging.getLogger(__name__)

# How long a request that lost the rotation claim waits for the winner's successor to appear
SUCCESSOR_CHECK_ATTEMPTS = 3
SUCCESSOR_CHECK_INTERVAL_SECONDS = 0.05


def _short(session_id: Optional[str]) -> str:
    return f"{session_id[:8]}..." if session_id else "<none>"


class SessionManager:
    """
    Decides per request whether to create, refresh or rotate a session.

    Holds no per-session state between calls; every resolution re-reads the
    store. No locking is done in-process. Two requests presenting the same
    aged token can both rotate it unless a rotation lease is configured, in
    which case the store arbitrates and only one rotation proceeds.
    """

    def __init__(
        self,
        store: AbstractSessionStore,
        session_duration: timedelta,
        regenerate_after: timedelta,
        token_generator: Optional[AbstractSessionTokenGenerator] = None,
        clock: Callable[[], float] = time.time,
        rotation_lease: Optional[timedelta] = None,
    ):
        if not isinstance(store, AbstractSessionStore):
            raise TypeError("SessionManager requires an instance of AbstractSessionStore.")
        if session_duration.total_seconds() <= 0:
            raise ValueError("session_duration must be positive.")
        if regenerate_after > session_duration:
            logger.warning(
                f"SessionManager: regenerate_after ({regenerate_after}) exceeds session_duration "
                f"({session_duration}); sessions will expire before they rotate."
            )
        self.store = store
        self.session_duration = session_duration
        self.regenerate_after = regenerate_after
        self.token_generator = token_generator or SecureSessionTokenGenerator()
        self.rotation_lease = rotation_lease if rotation_lease and rotation_lease.total_seconds() > 0 else None
        self._clock = clock
        logger.info(
            f"SessionManager initialized with store: {type(store).__name__}, "
            f"duration={session_duration}, regenerate_after={regenerate_after}, "
            f"rotation_lease={self.rotation_lease}"
        )

    async def resolve(self, presented_token: Optional[str]) -> SessionResolution:
        """
        Resolve the token presented with a request.

        Raises SessionStoreError when the TTL refresh or a rotation write
        fails, and EntropyUnavailableError when a new identifier cannot be
        generated. Problems reading the rotation metadata never fail the call.
        """
        if not presented_token:
            return await self._create()

        # Refresh unconditionally; an already-expired key makes this a no-op
        await self.store.expire(presented_token, self.session_duration)

        created_at = await self._read_created_at(presented_token)
        if created_at is None:
            return SessionResolution(session_id=presented_token, previous_session_id=presented_token)

        age = self._clock() - created_at
        if age <= self.regenerate_after.total_seconds():
            logger.debug(f"resolve: Session {_short(presented_token)} refreshed (age {age:.0f}s).")
            return SessionResolution(session_id=presented_token, previous_session_id=presented_token)

        logger.info(
            f"resolve: Session {_short(presented_token)} is {age:.0f}s old "
            f"(threshold {self.regenerate_after.total_seconds():.0f}s). Rotating."
        )
        return await self._rotate(presented_token)

    async def clear(self, session_id: str) -> None:
        """Terminate a session explicitly."""
        await self.store.clear(session_id)
        logger.info(f"clear: Session {_short(session_id)} cleared.")

    def _now(self) -> int:
        return int(self._clock())

    async def _create(self) -> SessionResolution:
        session_id = self.token_generator.generate()
        await self._write_with_ttl(session_id, {CREATED_AT_FIELD: str(self._now())})
        logger.info(f"_create: New session {_short(session_id)} created.")
        return SessionResolution(session_id=session_id, is_new=True)

    async def _write_with_ttl(self, session_id: str, fields: Dict[str, str]) -> None:
        # Fields and TTL are two store calls; shield the pair so a cancelled
        # request never leaves a key behind without an expiry.
        async def _write() -> None:
            await self.store.hset(session_id, fields)
            await self.store.expire(session_id, self.session_duration)

        await asyncio.shield(_write())

    async def _read_created_at(self, session_id: str) -> Optional[int]:
        try:
            raw = await self.store.hget(session_id, CREATED_AT_FIELD)
        except SessionFieldNotFoundError:
            logger.debug(f"_read_created_at: No {CREATED_AT_FIELD} for {_short(session_id)}; skipping rotation.")
            return None
        except SessionStoreError as e:
            logger.warning(f"_read_created_at: Metadata read failed for {_short(session_id)}: {e}. Skipping rotation.")
            return None

        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(
                f"_read_created_at: Unparsable {CREATED_AT_FIELD} {raw!r} for {_short(session_id)}; skipping rotation."
            )
            return None

    async def _rotate(self, old_session_id: str) -> SessionResolution:
        new_session_id = self.token_generator.generate()

        if self.rotation_lease:
            try:
                claimed = await self.store.claim_rotation(old_session_id, new_session_id, self.rotation_lease)
            except SessionStoreError as e:
                # The TTL is already refreshed; the presented session stays usable
                logger.warning(
                    f"_rotate: Could not claim rotation of {_short(old_session_id)}: {e}. Skipping rotation."
                )
                return SessionResolution(session_id=old_session_id, previous_session_id=old_session_id)
            if not claimed:
                return await self._follow_rotation(old_session_id)

        try:
            fields = await self.store.hgetall(old_session_id)
            fields[CREATED_AT_FIELD] = str(self._now())
            await self._write_with_ttl(new_session_id, fields)
        except SessionStoreError as e:
            # The old session stays untouched and valid; the new key may be orphaned until it expires
            logger.error(
                f"_rotate: Rotation of {_short(old_session_id)} failed before clearing it: {e}",
                exc_info=True,
            )
            if self.rotation_lease:
                await self._release_claim(old_session_id, new_session_id)
            raise

        try:
            await self.store.clear(old_session_id)
        except SessionStoreError as e:
            logger.warning(
                f"_rotate: Could not clear old session {_short(old_session_id)}: {e}. "
                "It will expire on its own TTL."
            )

        logger.info(f"_rotate: Session {_short(old_session_id)} rotated to {_short(new_session_id)}.")
        return SessionResolution(
            session_id=new_session_id,
            rotated=True,
            previous_session_id=old_session_id,
        )

    async def _release_claim(self, old_session_id: str, new_session_id: str) -> None:
        """Withdraw a claim whose successor was never written, so no request follows it."""
        try:
            released = await self.store.release_rotation(old_session_id, new_session_id)
        except SessionStoreError as e:
            logger.warning(
                f"_release_claim: Could not release rotation claim for {_short(old_session_id)}: {e}. "
                "It expires with the lease."
            )
            return
        if released:
            logger.info(f"_release_claim: Released rotation claim for {_short(old_session_id)}.")

    async def _successor_exists(self, successor: str) -> bool:
        # The winner writes its successor right after claiming it, so give it a few chances to land
        for attempt in range(SUCCESSOR_CHECK_ATTEMPTS):
            if attempt:
                await asyncio.sleep(SUCCESSOR_CHECK_INTERVAL_SECONDS)
            try:
                await self.store.hget(successor, CREATED_AT_FIELD)
                return True
            except SessionFieldNotFoundError:
                continue
            except SessionStoreError as e:
                logger.warning(f"_successor_exists: Could not read successor {_short(successor)}: {e}")
                return False
        return False

    async def _follow_rotation(self, old_session_id: str) -> SessionResolution:
        """Another request holds the rotation claim; hand back its successor identifier once it exists."""
        try:
            successor = await self.store.get_rotation_claim(old_session_id)
        except SessionStoreError as e:
            logger.warning(f"_follow_rotation: Could not read rotation claim for {_short(old_session_id)}: {e}")
            successor = None

        if not successor:
            logger.info(f"_follow_rotation: Claim for {_short(old_session_id)} vanished; keeping presented token.")
            return SessionResolution(session_id=old_session_id, previous_session_id=old_session_id)

        if not await self._successor_exists(successor):
            logger.warning(
                f"_follow_rotation: Successor {_short(successor)} of {_short(old_session_id)} was never written; "
                "keeping presented token."
            )
            return SessionResolution(session_id=old_session_id, previous_session_id=old_session_id)

        logger.info(
            f"_follow_rotation: Session {_short(old_session_id)} already being rotated to {_short(successor)}."
        )
        return SessionResolution(session_id=successor, previous_session_id=old_session_id)
