# session_keeper/sessions/transport.py
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

logger = logging.getLogger(__name__)


class AbstractTokenTransport(ABC):
    """Reads and writes the client-held session token. Opaque to the session manager."""

    @abstractmethod
    def get_token(self) -> Optional[str]:
        """Return the token presented by the client, or None."""
        pass

    @abstractmethod
    def set_token(self, value: str, ttl: timedelta) -> None:
        """Hand a new token to the client, valid for ttl."""
        pass


class CookieTokenTransport(AbstractTokenTransport):
    """
    Carries the session token in an HttpOnly cookie.

    The incoming cookie is read from the request; the outgoing one is
    buffered until apply() writes it onto the response that is actually
    sent, since the response usually does not exist yet when the session
    is resolved.
    """

    def __init__(self, connection: HTTPConnection, cookie_name: str, secure: bool = False):
        self.connection = connection
        self.cookie_name = cookie_name
        self.secure = secure
        self._pending: Optional[tuple] = None

    def get_token(self) -> Optional[str]:
        token = self.connection.cookies.get(self.cookie_name)
        return token or None

    def set_token(self, value: str, ttl: timedelta) -> None:
        if self._pending is not None:
            logger.warning(f"set_token: Token for cookie '{self.cookie_name}' set twice in one request.")
        self._pending = (value, ttl)

    @property
    def has_pending_token(self) -> bool:
        return self._pending is not None

    def apply(self, response: Response) -> None:
        """Write the buffered token, if any, onto the outgoing response."""
        if self._pending is None:
            return
        value, ttl = self._pending
        max_age = int(ttl.total_seconds())
        response.set_cookie(
            key=self.cookie_name,
            value=value,
            max_age=max_age,
            expires=max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )
