"""Test fixtures — in-memory storage and a scriptable auth provider.

Learn: The resolver only talks to the AuthProvider interface, so tests
drive it with FakeAuthProvider: set `session` to control what
get_session() returns, call sign_in()/expire() to push events, close
`gate` to hold get_session() in flight (the "still loading" window).
"""

import asyncio
import json
import time
from typing import Optional

import httpx
import jwt
import pytest
import pytest_asyncio

from supa_artistry.auth.provider import AuthProvider, ProviderUnavailable
from supa_artistry.events.types import SIGNED_IN, SIGNED_OUT
from supa_artistry.session.models import AuthIdentity, AuthSession
from supa_artistry.session.resolver import SessionResolver
from supa_artistry.session.storage import MemoryStorage

GUEST_KEY = "guestSessionId"
JWT_SECRET = "test-jwt-secret-with-enough-bytes-for-hs256"


def make_token(sub: str = "u_42", expires_in: int = 3600, secret: str = JWT_SECRET) -> str:
    """A Supabase-shaped HS256 access token."""
    now = int(time.time())
    return jwt.encode(
        {"sub": sub, "aud": "authenticated", "role": "authenticated",
         "iat": now, "exp": now + expires_in},
        secret,
        algorithm="HS256",
    )


def make_session(
    user_id: str = "u_42",
    email: Optional[str] = "artist@example.com",
    expires_in: int = 3600,
) -> AuthSession:
    return AuthSession(
        access_token=make_token(user_id, expires_in),
        refresh_token=f"refresh-{user_id}",
        expires_in=expires_in,
        expires_at=int(time.time()) + expires_in,
        user=AuthIdentity(id=user_id, email=email),
    )


def token_response(user_id="u_42", email="artist@example.com", expires_in=3600, **extra):
    """Body of a GoTrue /token or /verify success."""
    body = {
        "access_token": make_token(user_id, expires_in),
        "token_type": "bearer",
        "expires_in": expires_in,
        "refresh_token": f"refresh-{user_id}-{time.time_ns()}",
        "user": {"id": user_id, "email": email, "phone": "", "aud": "authenticated"},
    }
    body.update(extra)
    return body


class FakeGoTrue:
    """Records requests; responds from a {(method, path): handler} table.

    Mount with httpx.MockTransport(gotrue).
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes = {}

    def on(self, method, path, status=200, body=None, exc=None):
        self.routes[(method, path)] = (status, body, exc)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body, exc = self.routes.get(
            (request.method, request.url.path), (404, {"msg": "not found"}, None)
        )
        if exc is not None:
            raise exc
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def last_json(self):
        return json.loads(self.requests[-1].content)


class FakeAuthProvider(AuthProvider):
    """In-memory provider. Pushes events the way a real one would."""

    def __init__(self, session: Optional[AuthSession] = None):
        super().__init__()
        self.session = session
        self.fail_sign_out = False
        self.sign_out_calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def get_session(self) -> Optional[AuthSession]:
        if self.gate is not None:
            await self.gate.wait()
        return self.session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.session is not None:
            self.session = None
            self._emit(SIGNED_OUT, None)
        if self.fail_sign_out:
            raise ProviderUnavailable("Auth service unreachable: connection refused")

    def sign_in(self, session: AuthSession) -> None:
        self.session = session
        self._emit(SIGNED_IN, session)

    def expire(self) -> None:
        """Token expired server-side; the provider pushes a sign-out."""
        self.session = None
        self._emit(SIGNED_OUT, None)


async def settle() -> None:
    """Let the resolver's consumer task drain pending events."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def provider():
    return FakeAuthProvider()


@pytest_asyncio.fixture()
async def resolver(provider, storage):
    """Resolver wired to the fake provider. Not initialized yet."""
    r = SessionResolver(provider, storage, storage_key=GUEST_KEY)
    yield r
    await r.close()
