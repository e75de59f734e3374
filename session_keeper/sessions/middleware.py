# session_keeper/sessions/middleware.py
import logging
from typing import Optional

from fastapi import status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from .accessor import attach_resolution, is_session_discarded
from .errors import EntropyUnavailableError, SessionStoreError
from .session_data import SessionResolution
from .session_manager import SessionManager
from .transport import AbstractTokenTransport, CookieTokenTransport

logger = logging.getLogger(__name__)


async def resolve_request_session(
    manager: SessionManager, transport: AbstractTokenTransport
) -> SessionResolution:
    """
    Read the presented token, resolve it, and hand a replacement token back
    to the client when the identifier changed.
    """
    presented_token = transport.get_token()
    resolution = await manager.resolve(presented_token)
    if resolution.changed:
        transport.set_token(resolution.session_id, manager.session_duration)
    return resolution


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Resolves the session for every HTTP request before it reaches the routes.

    The manager is taken from the constructor or, when omitted, from
    app.state.session_manager, which the application lifespan populates.
    """

    def __init__(
        self,
        app: ASGIApp,
        cookie_name: str,
        secure: bool = False,
        manager: Optional[SessionManager] = None,
    ):
        super().__init__(app)
        self.cookie_name = cookie_name
        self.secure = secure
        self._manager = manager

    def _get_manager(self, request: Request) -> Optional[SessionManager]:
        if self._manager is not None:
            return self._manager
        return getattr(request.app.state, "session_manager", None)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        manager = self._get_manager(request)
        if manager is None:
            logger.error("SessionMiddleware: No SessionManager configured. Refusing request.")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Session management is not initialized."},
            )

        transport = CookieTokenTransport(request, self.cookie_name, secure=self.secure)
        try:
            resolution = await resolve_request_session(manager, transport)
        except (SessionStoreError, EntropyUnavailableError) as e:
            logger.error(f"SessionMiddleware: Session resolution failed for {request.url.path}: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Internal Server Error"},
            )

        attach_resolution(request, resolution)
        response = await call_next(request)
        if is_session_discarded(request):
            logger.debug(f"SessionMiddleware: Session discarded by {request.url.path}; not sending a token.")
        else:
            transport.apply(response)
        return response
