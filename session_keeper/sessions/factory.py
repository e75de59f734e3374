# session_keeper/sessions/factory.py
import logging
from typing import Optional

from ..settings import Settings, settings as keeper_global_settings
from .memory_store import InMemorySessionStore
from .session_manager import SessionManager
from .session_store import AbstractSessionStore, RedisSessionStore
from .token_generator import SecureSessionTokenGenerator

logger = logging.getLogger(__name__)


def build_session_store(config: Optional[Settings] = None) -> AbstractSessionStore:
    """Create (but do not initialize) the store selected by storage_backend."""
    config = config or keeper_global_settings
    if config.storage_backend == "redis":
        return RedisSessionStore(config=config)
    if config.storage_backend == "memory":
        logger.warning("build_session_store: Using process-local InMemorySessionStore. Not for production.")
        return InMemorySessionStore(
            key_prefix=config.session_key_prefix,
            rotation_key_prefix=config.session_rotation_key_prefix,
        )
    raise ValueError(f"Unsupported storage_backend: {config.storage_backend}")


def build_session_manager(store: AbstractSessionStore, config: Optional[Settings] = None) -> SessionManager:
    config = config or keeper_global_settings
    return SessionManager(
        store=store,
        session_duration=config.session_duration,
        regenerate_after=config.session_regenerate_after,
        token_generator=SecureSessionTokenGenerator(config.session_token_bytes),
        rotation_lease=config.session_rotation_lease,
    )
