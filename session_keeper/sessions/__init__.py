# session_keeper/sessions/__init__.py
"""
Session lifecycle management for Session Keeper.

Provides the token generator, the key-value store capability and its
backends, the session manager that creates, refreshes and rotates sessions,
and the request integration (transport, middleware, accessor).
"""

from .errors import (
    SessionError,
    EntropyUnavailableError,
    SessionStoreError,
    SessionFieldNotFoundError,
    SessionUnauthorizedError,
    MissingSessionError,
)
from .session_data import SessionResolution, CREATED_AT_FIELD, RESERVED_FIELDS
from .token_generator import (
    AbstractSessionTokenGenerator,
    SecureSessionTokenGenerator,
    is_well_formed_session_id,
)
from .session_store import AbstractSessionStore, RedisSessionStore
from .memory_store import InMemorySessionStore
from .session_manager import SessionManager
from .transport import AbstractTokenTransport, CookieTokenTransport
from .accessor import (
    SessionAccessor,
    attach_resolution,
    get_session_id,
    get_session_resolution,
    is_session_discarded,
    mark_session_discarded,
)
from .middleware import SessionMiddleware, resolve_request_session
from .factory import build_session_store, build_session_manager

# Export public API components for session management
__all__ = [
    "SessionError",
    "EntropyUnavailableError",
    "SessionStoreError",
    "SessionFieldNotFoundError",
    "SessionUnauthorizedError",
    "MissingSessionError",
    "SessionResolution",
    "CREATED_AT_FIELD",
    "RESERVED_FIELDS",
    "AbstractSessionTokenGenerator",
    "SecureSessionTokenGenerator",
    "is_well_formed_session_id",
    "AbstractSessionStore",
    "RedisSessionStore",
    "InMemorySessionStore",
    "SessionManager",
    "AbstractTokenTransport",
    "CookieTokenTransport",
    "SessionAccessor",
    "attach_resolution",
    "get_session_id",
    "get_session_resolution",
    "is_session_discarded",
    "mark_session_discarded",
    "SessionMiddleware",
    "resolve_request_session",
    "build_session_store",
    "build_session_manager",
]
