# session_keeper/sessions/token_generator.py
import logging
import re
import secrets
from abc import ABC, abstractmethod

from .errors import EntropyUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TOKEN_BYTES = 32

_SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]+$")


class AbstractSessionTokenGenerator(ABC):
    """Interface for producing opaque session identifiers."""

    @abstractmethod
    def generate(self) -> str:
        """Return a new, unguessable session identifier."""
        pass


class SecureSessionTokenGenerator(AbstractSessionTokenGenerator):
    """
    Generates session identifiers from the operating system's CSPRNG.

    32 random bytes are hex-encoded, giving 64 characters and 256 bits of
    entropy. Identifiers are not deduplicated against the store.
    """

    def __init__(self, num_bytes: int = DEFAULT_SESSION_TOKEN_BYTES):
        if num_bytes < 16:
            raise ValueError("Session identifiers require at least 16 random bytes.")
        self.num_bytes = num_bytes

    def generate(self) -> str:
        try:
            raw = secrets.token_bytes(self.num_bytes)
        except (OSError, NotImplementedError) as e:
            logger.critical(f"generate: Secure random source failed: {e}", exc_info=True)
            raise EntropyUnavailableError() from e
        return raw.hex()


def is_well_formed_session_id(value: str, num_bytes: int = DEFAULT_SESSION_TOKEN_BYTES) -> bool:
    """Check that a string has the shape of an identifier produced by the generator."""
    if not value or len(value) != num_bytes * 2:
        return False
    return bool(_SESSION_ID_PATTERN.match(value))
