# session_keeper/sessions/errors.py
from fastapi import HTTPException, status


class SessionError(Exception):
    """Base class for session lifecycle errors raised by the core."""


class EntropyUnavailableError(SessionError):
    """
    Raised when the secure random source cannot supply bytes for a new
    session identifier. Fatal for the current request; never retried and
    never replaced by a weaker source.
    """

    def __init__(self, detail: str = "Secure random source unavailable for session identifier generation."):
        self.detail = detail
        super().__init__(detail)


class SessionStoreError(SessionError):
    """Raised when the backing key-value store fails an operation."""

    def __init__(self, operation: str, session_id: str, detail: str = "Session store operation failed."):
        self.operation = operation
        self.session_id = session_id
        self.detail = detail
        super().__init__(f"{operation} failed for session '{session_id[:8]}...': {detail}")


class SessionFieldNotFoundError(SessionStoreError):
    """
    Raised when a session or one of its fields is absent.

    Kept separate from a generic store failure so callers can tell
    "no metadata" apart from "store is down".
    """

    def __init__(self, session_id: str, field: str):
        self.field = field
        super().__init__("HGET", session_id, detail=f"field '{field}' not found")


class SessionUnauthorizedError(HTTPException):
    """Raised when the session accessor is used on a request that was never resolved."""

    def __init__(self, detail: str = "No session is attached to this request."):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class MissingSessionError(RuntimeError):
    """
    Raised by the "must succeed" accessor. A missing session at such a call
    site means the route was mounted outside the session middleware.
    """

    def __init__(self, detail: str = "missing session ID"):
        super().__init__(detail)
