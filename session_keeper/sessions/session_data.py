# session_keeper/sessions/session_data.py
from pydantic import BaseModel, Field
from typing import Optional

# Reserved field holding the creation time (integer seconds since epoch).
# Used only to decide rotation eligibility.
CREATED_AT_FIELD = "created_at"

RESERVED_FIELDS = frozenset({CREATED_AT_FIELD})


class SessionResolution(BaseModel):
    """
    Outcome of resolving the token presented with one request.
    """

    session_id: str = Field(description="The identifier the client should hold after this request.")
    is_new: bool = Field(default=False, description="True when no token was presented and a session was created.")
    rotated: bool = Field(default=False, description="True when this request rotated the session identifier.")
    previous_session_id: Optional[str] = Field(
        default=None,
        description="The token the client presented, if any.",
    )

    model_config = {"frozen": True}

    @property
    def changed(self) -> bool:
        """Whether the client-held token has to be replaced."""
        return self.session_id != self.previous_session_id
