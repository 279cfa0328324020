"""Session resolver — one authoritative answer to "who is this?".

Learn: The resolver owns a single ResolvedSession value:

  loading → Authenticated(identity) | Guest(token) | NoSession

It changes only in response to:
1. Provider events (sign-in, sign-out, token refresh, expiry)
2. User actions (continue_as_guest, sign_out)
3. The one-time read of the stored guest token at initialize()

Invariant: Authenticated and Guest are never both active. An identity
from the provider always clears the guest token, in memory and in
storage, before anything is published, including the very first
state, so a stored guest never flashes up for a signed-in user.

Nothing is published until the provider has answered at least once.
Until then the resolver reports `loading`.
"""

import asyncio
import secrets
from typing import Callable, Optional

import structlog

from supa_artistry.auth.provider import (
    AuthEvent,
    AuthEventStream,
    AuthProvider,
    AuthProviderError,
    ProviderUnavailable,
)
from supa_artistry.config import settings
from supa_artistry.events.types import INITIAL_SESSION
from supa_artistry.session.models import (
    Authenticated,
    Guest,
    NoSession,
    ResolvedSession,
)
from supa_artistry.session.storage import KeyValueStorage, StorageUnavailable

logger = structlog.get_logger()

GUEST_PREFIX = "guest_"

Listener = Callable[[ResolvedSession], None]


class InvalidGuestTransition(Exception):
    """Raised when continue_as_guest() is called outside the NoSession state."""


def new_guest_token() -> str:
    """Generate a fresh guest identifier (128 bits of randomness)."""
    return f"{GUEST_PREFIX}{secrets.token_hex(16)}"


class SessionResolver:
    """Owns the current ResolvedSession and the guest token.

    Usage:
        resolver = SessionResolver(provider, storage)
        await resolver.initialize()
        unsubscribe = resolver.subscribe(render)
        resolver.get_active_identifier()
    """

    def __init__(
        self,
        provider: AuthProvider,
        storage: KeyValueStorage,
        *,
        storage_key: Optional[str] = None,
        token_factory: Callable[[], str] = new_guest_token,
    ):
        self.provider = provider
        self.storage = storage
        self.storage_key = storage_key or settings.guest_storage_key
        self._token_factory = token_factory

        self._guest: Optional[str] = None
        self._current: Optional[ResolvedSession] = None
        self._ready = asyncio.Event()
        self._listeners: list[Listener] = []
        self._stream: Optional[AuthEventStream] = None
        self._consumer: Optional[asyncio.Task] = None
        self.memory_only = False  # True once storage has failed us

    # ─── Reactive read ────────────────────────────────────

    @property
    def current(self) -> Optional[ResolvedSession]:
        """The published state, or None while still loading."""
        return self._current

    @property
    def loading(self) -> bool:
        return self._current is None

    async def wait_ready(self) -> ResolvedSession:
        """Block until the first state has been published, then return it."""
        await self._ready.wait()
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` on every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_active_identifier(self) -> Optional[str]:
        """User id if signed in, guest token if a guest, otherwise None."""
        current = self._current
        if isinstance(current, Authenticated):
            return current.identity.id
        if isinstance(current, Guest):
            return current.token
        return None

    # ─── Lifecycle ────────────────────────────────────────

    async def initialize(self) -> None:
        """Load the stored guest, subscribe to the provider, fetch the session.

        Learn: We subscribe *before* asking for the current session so no
        event can slip through the gap. If a pushed event gets applied
        while get_session() is still in flight, that event is newer than
        whatever get_session() returns, so the one-shot answer is dropped.
        """
        if self._stream is not None:
            return

        self._guest = self._read_stored_guest()
        self._stream = self.provider.subscribe()
        self._consumer = asyncio.create_task(self._consume(self._stream))

        try:
            session = await self.provider.get_session()
        except Exception:
            # Back to a clean slate so initialize() can be retried.
            await self.close()
            self._stream = None
            raise
        if self._ready.is_set():
            logger.debug("session.initial_session_superseded")
            return
        self.on_provider_event(AuthEvent(type=INITIAL_SESSION, session=session))

    async def close(self) -> None:
        """Stop listening to the provider. Already-queued events are applied first."""
        if self._stream is not None:
            self._stream.close()
        if self._consumer is not None:
            await self._consumer
            self._consumer = None

    # ─── Transitions ──────────────────────────────────────

    def on_provider_event(self, event: AuthEvent) -> ResolvedSession:
        """Apply one provider event and publish the resulting state."""
        session = event.session
        if session is not None:
            if self._guest is not None:
                logger.info("session.guest_superseded", user_id=session.user.id)
            self._clear_guest()
            state: ResolvedSession = Authenticated(identity=session.user)
        else:
            state = Guest(token=self._guest) if self._guest else NoSession()

        logger.debug("session.provider_event", type=event.type, state=state.kind)
        return self._publish(state)

    def continue_as_guest(self) -> Guest:
        """Start browsing anonymously.

        Raises InvalidGuestTransition while loading or signed in. If a
        guest token already exists it is returned unchanged; a second
        identity is never minted.
        """
        current = self._current
        if current is None:
            raise InvalidGuestTransition("Session is still loading")
        if isinstance(current, Authenticated):
            raise InvalidGuestTransition(
                f"Already signed in as {current.identity.contact or current.identity.id}"
            )
        if isinstance(current, Guest):
            return current

        token = self._token_factory()
        self._guest = token
        try:
            self.storage.set(self.storage_key, token)
        except StorageUnavailable as e:
            self.memory_only = True
            logger.warning("session.storage_unavailable", action="write", error=str(e))

        logger.info("session.guest_created", memory_only=self.memory_only)
        state = Guest(token=token)
        self._publish(state)
        return state

    async def sign_out(self) -> ResolvedSession:
        """Sign out everywhere and forget the guest token.

        Local state is cleared even if the provider call fails; the
        failure is re-raised afterwards as ProviderUnavailable.
        """
        error: Optional[AuthProviderError] = None
        try:
            await self.provider.sign_out()
        except AuthProviderError as e:
            error = e

        self._clear_guest()
        state = self._publish(NoSession())
        logger.info("session.signed_out", remote_ok=error is None)

        if isinstance(error, ProviderUnavailable):
            raise error
        if error is not None:
            raise ProviderUnavailable(f"Remote sign-out failed: {error}") from error
        return state

    # ─── Internals ────────────────────────────────────────

    async def _consume(self, stream: AuthEventStream) -> None:
        async for event in stream:
            try:
                self.on_provider_event(event)
            except Exception:
                logger.exception("session.event_failed", type=event.type)

    def _publish(self, state: ResolvedSession) -> ResolvedSession:
        changed = state != self._current
        self._current = state
        self._ready.set()
        if not changed:
            return state

        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("session.listener_failed", state=state.kind)
        return state

    def _read_stored_guest(self) -> Optional[str]:
        try:
            return self.storage.get(self.storage_key) or None
        except StorageUnavailable as e:
            self.memory_only = True
            logger.warning("session.storage_unavailable", action="read", error=str(e))
            return None

    def _clear_guest(self) -> None:
        self._guest = None
        try:
            self.storage.remove(self.storage_key)
        except StorageUnavailable as e:
            self.memory_only = True
            logger.warning("session.storage_unavailable", action="remove", error=str(e))
