"""Supabase auth provider — GoTrue REST client over httpx.

Learn: Supabase Auth (GoTrue) is a plain JSON/HTTP API under /auth/v1.
Every request carries the project's anon key in the `apikey` header;
user-scoped calls (logout) also carry the user's access token.

  POST /signup                          → email + password sign-up
  POST /token?grant_type=password       → email + password sign-in
  POST /otp                             → send SMS code
  POST /verify                          → exchange SMS code for a session
  POST /token?grant_type=refresh_token  → new access token
  POST /logout                          → revoke the session

The session is kept in memory and mirrored into durable storage under
`auth_storage_key`, so a restart picks it back up. Every session change
is pushed to subscribers via _emit().
"""

import time
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from supa_artistry.auth.jwt import TokenError, decode_access_token, token_expiry
from supa_artistry.auth.provider import (
    AuthApiError,
    AuthProvider,
    ProviderUnavailable,
)
from supa_artistry.config import settings
from supa_artistry.events.types import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED
from supa_artistry.session.models import AuthSession
from supa_artistry.session.storage import (
    KeyValueStorage,
    MemoryStorage,
    StorageUnavailable,
)

logger = structlog.get_logger()

# Logout responses that mean "session already gone", not a failure.
# GoTrue answers 403 for a session it no longer knows.
_ALREADY_SIGNED_OUT = (401, 403, 404)


class SupabaseAuthProvider(AuthProvider):
    """Auth provider backed by a Supabase project."""

    def __init__(
        self,
        url: Optional[str] = None,
        anon_key: Optional[str] = None,
        storage: Optional[KeyValueStorage] = None,
        *,
        storage_key: Optional[str] = None,
        timeout: Optional[float] = None,
        refresh_margin: Optional[float] = None,
        jwt_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.url = (settings.supabase_url if url is None else url).rstrip("/")
        self.anon_key = settings.supabase_anon_key if anon_key is None else anon_key
        self.storage = storage if storage is not None else MemoryStorage()
        self.storage_key = storage_key or settings.auth_storage_key
        self.refresh_margin = (
            settings.refresh_margin_seconds if refresh_margin is None else refresh_margin
        )
        self.jwt_secret = settings.supabase_jwt_secret if jwt_secret is None else jwt_secret

        self._client = httpx.AsyncClient(
            base_url=f"{self.url}/auth/v1",
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )
        self._session: Optional[AuthSession] = None
        self._loaded = False

    # ─── Session access ───────────────────────────────────

    async def get_session(self) -> Optional[AuthSession]:
        """Return the current session, refreshing it if it's about to expire.

        Learn: A refresh that fails because the network is down is only
        fatal if the access token has actually expired. Until then the
        old token is still usable, so we hand it back.
        """
        session = self._current()
        if session is None or not session.expires_within(self.refresh_margin):
            return session

        try:
            return await self.refresh_session()
        except ProviderUnavailable as e:
            if session.expires_within(0):
                raise
            logger.warning("auth.refresh_deferred", error=str(e))
            return session

    async def refresh_if_needed(self, margin: Optional[float] = None) -> Optional[AuthSession]:
        """Refresh the session if it expires within `margin` seconds."""
        margin = self.refresh_margin if margin is None else margin
        session = self._current()
        if session is not None and session.expires_within(margin):
            return await self.refresh_session()
        return session

    async def refresh_session(self) -> Optional[AuthSession]:
        """Exchange the refresh token for a new session.

        A rejected refresh token means the session is over: it's removed
        and SIGNED_OUT is emitted.
        """
        session = self._current()
        if session is None:
            return None

        try:
            data = await self._request(
                "POST",
                "/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": session.refresh_token},
            )
        except AuthApiError as e:
            logger.info("auth.refresh_rejected", user_id=session.user.id, error=e.message)
            self._remove_session()
            return None

        refreshed = self._parse_session(data)
        self._save_session(refreshed)
        logger.info("auth.token_refreshed", user_id=refreshed.user.id)
        self._emit(TOKEN_REFRESHED, refreshed)
        return refreshed

    # ─── Sign-up / sign-in ────────────────────────────────

    async def sign_up(
        self,
        email: str,
        password: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[AuthSession]:
        """Create an account.

        Returns a session when the project auto-confirms new users,
        otherwise None (a confirmation email has been sent).
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = await self._request(
            "POST", "/signup", params=params, json={"email": email, "password": password}
        )
        if not data.get("access_token"):
            logger.info("auth.signup_pending_confirmation", email=email)
            return None
        return self._signed_in(self._parse_session(data))

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._signed_in(self._parse_session(data))

    async def sign_in_with_otp(self, phone: str) -> None:
        """Send a one-time code by SMS. Creates the user if needed."""
        await self._request(
            "POST",
            "/otp",
            json={"phone": phone, "create_user": True, "channel": "sms"},
        )
        logger.info("auth.otp_sent", phone=phone)

    async def verify_otp(self, phone: str, token: str, type: str = "sms") -> AuthSession:
        data = await self._request(
            "POST", "/verify", json={"type": type, "phone": phone, "token": token}
        )
        return self._signed_in(self._parse_session(data))

    # ─── Sign-out ─────────────────────────────────────────

    async def sign_out(self) -> None:
        session = self._current()
        if session is None:
            return

        error: Optional[Exception] = None
        try:
            await self._request("POST", "/logout", token=session.access_token)
        except AuthApiError as e:
            if e.status not in _ALREADY_SIGNED_OUT:
                error = e
        except ProviderUnavailable as e:
            error = e

        self._remove_session()
        if error is not None:
            logger.warning("auth.remote_sign_out_failed", error=str(error))
        if isinstance(error, AuthApiError):
            raise ProviderUnavailable(f"Sign-out rejected: {error.message}") from error
        if error is not None:
            raise error

    async def close(self) -> None:
        await self._client.aclose()

    # ─── Internals ────────────────────────────────────────

    def _current(self) -> Optional[AuthSession]:
        if not self._loaded:
            self._loaded = True
            self._session = self._load_stored()
        return self._session

    def _load_stored(self) -> Optional[AuthSession]:
        try:
            raw = self.storage.get(self.storage_key)
        except StorageUnavailable as e:
            logger.warning("auth.storage_unavailable", error=str(e))
            return None
        if not raw:
            return None
        try:
            return AuthSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("auth.stored_session_invalid", key=self.storage_key)
            self._forget_stored()
            return None

    def _save_session(self, session: AuthSession) -> None:
        self._loaded = True
        self._session = session
        try:
            self.storage.set(self.storage_key, session.model_dump_json())
        except StorageUnavailable as e:
            logger.warning("auth.storage_unavailable", error=str(e))

    def _remove_session(self) -> None:
        self._loaded = True
        self._session = None
        self._forget_stored()
        self._emit(SIGNED_OUT, None)

    def _forget_stored(self) -> None:
        try:
            self.storage.remove(self.storage_key)
        except StorageUnavailable as e:
            logger.warning("auth.storage_unavailable", error=str(e))

    def _signed_in(self, session: AuthSession) -> AuthSession:
        self._save_session(session)
        logger.info("auth.signed_in", user_id=session.user.id)
        self._emit(SIGNED_IN, session)
        return session

    def _parse_session(self, data: dict[str, Any]) -> AuthSession:
        """Build an AuthSession from a GoTrue token response."""
        access_token = data.get("access_token") or ""
        if self.jwt_secret:
            try:
                decode_access_token(access_token, secret=self.jwt_secret)
            except TokenError as e:
                raise AuthApiError(str(e), status=401) from e

        try:
            session = AuthSession.model_validate(data)
        except ValidationError as e:
            raise ProviderUnavailable(f"Unexpected session payload: {e}") from e

        if session.expires_at is None:
            expires_at = token_expiry(access_token) or int(time.time()) + session.expires_in
            session = session.model_copy(update={"expires_at": expires_at})
        return session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        if not self.url or not self.anon_key:
            raise ProviderUnavailable(
                "Supabase is not configured "
                "(set SUPA_ARTISTRY_SUPABASE_URL and SUPA_ARTISTRY_SUPABASE_ANON_KEY)"
            )

        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
        }
        try:
            r = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.RequestError as e:
            raise ProviderUnavailable(f"Auth service unreachable: {e}") from e

        if r.status_code >= 500:
            raise ProviderUnavailable(
                f"Auth service error: {r.status_code} {_error_message(r)}"
            )
        if r.status_code >= 400:
            raise AuthApiError(_error_message(r), status=r.status_code)

        if r.status_code == 204 or not r.content.strip():
            return {}
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderUnavailable(f"Auth service returned invalid JSON: {e}") from e
        return data if isinstance(data, dict) else {}


def _error_message(r: httpx.Response) -> str:
    """Pull the human-readable message out of a GoTrue error body."""
    try:
        data = r.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    body = (r.text or "").strip()
    if len(body) > 200:
        body = body[:200] + "...(truncated)"
    return body or f"HTTP {r.status_code}"
