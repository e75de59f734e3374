# session_keeper/sessions/accessor.py
import logging
from typing import Optional

from fastapi import Request
from starlette.requests import HTTPConnection

from .errors import MissingSessionError, SessionUnauthorizedError
from .session_data import SessionResolution

logger = logging.getLogger(__name__)

# Attribute on the per-request state object (scope["state"]) carrying the resolution
SESSION_STATE_ATTR = "session_resolution"
# Set when a handler terminated the session, so no replacement token is handed out
SESSION_DISCARDED_ATTR = "session_discarded"


def attach_resolution(connection: HTTPConnection, resolution: SessionResolution) -> None:
    """Attach a resolved session to the request it was resolved for."""
    setattr(connection.state, SESSION_STATE_ATTR, resolution)


def mark_session_discarded(connection: HTTPConnection) -> None:
    """Tell the middleware not to send this request's session token back to the client."""
    setattr(connection.state, SESSION_DISCARDED_ATTR, True)


def is_session_discarded(connection: HTTPConnection) -> bool:
    return getattr(connection.state, SESSION_DISCARDED_ATTR, False) is True


class SessionAccessor:
    """Exposes the session resolved for one request to downstream handlers."""

    def __init__(self, connection: HTTPConnection):
        self.connection = connection

    def _resolution(self) -> Optional[SessionResolution]:
        resolution = getattr(self.connection.state, SESSION_STATE_ATTR, None)
        if not isinstance(resolution, SessionResolution) or not resolution.session_id:
            return None
        return resolution

    def resolution(self) -> SessionResolution:
        resolution = self._resolution()
        if resolution is None:
            logger.warning(f"SessionAccessor: No session resolved for {self.connection.url.path}.")
            raise SessionUnauthorizedError()
        return resolution

    def current(self) -> str:
        """Return the resolved session identifier or raise SessionUnauthorizedError (401)."""
        return self.resolution().session_id

    def must_current(self) -> str:
        """Return the resolved session identifier; absence is a programming error."""
        resolution = self._resolution()
        if resolution is None:
            raise MissingSessionError()
        return resolution.session_id


async def get_session_resolution(request: Request) -> SessionResolution:
    """FastAPI dependency providing the current request's session resolution."""
    return SessionAccessor(request).resolution()


async def get_session_id(request: Request) -> str:
    """FastAPI dependency providing the current request's session identifier."""
    return SessionAccessor(request).current()
