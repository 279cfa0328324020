"""Auth provider base — the boundary to the hosted auth service.

Learn: The resolver never talks HTTP. It only needs three things:
1. get_session() → the current session (one-shot, async)
2. subscribe() → an ordered stream of auth events (push)
3. sign_out() → end the session remotely (async, may fail)

Subscriptions are modelled as an inbound channel: each subscriber gets
its own FIFO queue, and _emit() fans every event out to all of them.
Whoever consumes the stream sees events in exactly the order they were
emitted.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

from supa_artistry.events.types import ALL_EVENTS
from supa_artistry.session.models import AuthSession

logger = structlog.get_logger()


# ─── Errors ──────────────────────────────────────────────


class AuthProviderError(Exception):
    """Base for every failure coming from the auth provider."""


class ProviderUnavailable(AuthProviderError):
    """Network failure, timeout, or a 5xx from the auth service."""


class AuthApiError(AuthProviderError):
    """The auth service understood the request and rejected it."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


# ─── Events ──────────────────────────────────────────────


@dataclass(frozen=True)
class AuthEvent:
    """One push from the provider — an event type plus the session after it."""

    type: str
    session: Optional[AuthSession] = None


_CLOSED = object()


class AuthEventStream:
    """Async iterator over auth events, in delivery order.

    Usage:
        stream = provider.subscribe()
        async for event in stream:
            ...
        stream.close()  # ends the iteration
    """

    def __init__(self, provider: "AuthProvider"):
        self._provider = provider
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, event: AuthEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Unsubscribe. Pending events are still delivered, then iteration ends."""
        if self.closed:
            return
        self.closed = True
        self._provider._unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> AuthEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


# ─── Provider ────────────────────────────────────────────


class AuthProvider(ABC):
    """Abstract base for auth providers.

    Learn: Subclasses implement the network calls and call _emit()
    whenever the session changes. Subscription bookkeeping lives here.
    """

    def __init__(self):
        self._streams: list[AuthEventStream] = []

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        """Return the current session, or None if nobody is signed in."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session.

        Must clear the local session and emit SIGNED_OUT even when the
        remote call fails; the failure is re-raised afterwards.
        """

    def subscribe(self) -> AuthEventStream:
        """Open a new event stream. Events emitted from now on are buffered."""
        stream = AuthEventStream(self)
        self._streams.append(stream)
        return stream

    def _unsubscribe(self, stream: AuthEventStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def _emit(self, event_type: str, session: Optional[AuthSession]) -> None:
        """Fan an event out to every open stream."""
        if event_type not in ALL_EVENTS:
            raise ValueError(f"Unknown auth event: {event_type}")
        event = AuthEvent(type=event_type, session=session)
        logger.debug(
            "auth.event",
            type=event_type,
            user_id=session.user.id if session else None,
            subscribers=len(self._streams),
        )
        for stream in list(self._streams):
            stream.push(event)
