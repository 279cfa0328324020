"""Session value types.

Learn: AuthIdentity and AuthSession mirror the JSON the auth service
returns, so they are pydantic models (validated on the way in, dumped
back to JSON for persistence). The ResolvedSession variants are plain
frozen dataclasses — derived values, never stored.
"""

import time
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel


# ─── Provider-owned ──────────────────────────────────────


class AuthIdentity(BaseModel):
    """A signed-in user as reported by the auth provider."""

    id: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def contact(self) -> Optional[str]:
        """Email if present, otherwise phone (what the header shows)."""
        return self.email or self.phone or None


class AuthSession(BaseModel):
    """Tokens plus the user they belong to."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    expires_at: Optional[int] = None  # epoch seconds
    user: AuthIdentity

    model_config = {"frozen": True}

    def expires_within(self, seconds: float, now: Optional[float] = None) -> bool:
        """True if the access token expires within `seconds` from now."""
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - now <= seconds


# ─── Resolved ────────────────────────────────────────────


@dataclass(frozen=True)
class Authenticated:
    identity: AuthIdentity
    kind: str = "authenticated"


@dataclass(frozen=True)
class Guest:
    token: str
    kind: str = "guest"


@dataclass(frozen=True)
class NoSession:
    kind: str = "none"


ResolvedSession = Union[Authenticated, Guest, NoSession]
