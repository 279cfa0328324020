"""Supabase provider tests against a fake GoTrue (httpx.MockTransport).

Learn: Tests cover:
1. Sign-in / sign-up / OTP request shapes and SIGNED_IN events
2. GoTrue error bodies → AuthApiError, outages → ProviderUnavailable
3. Session persistence in storage across provider instances
4. Refresh (TOKEN_REFRESHED) and refresh rejection (SIGNED_OUT)
5. Sign-out: remote revoke, optimistic local cleanup
"""

import httpx
import pytest
import pytest_asyncio

from conftest import JWT_SECRET, FakeGoTrue, make_session, make_token, token_response
from supa_artistry.auth.jwt import TokenError
from supa_artistry.auth.provider import AuthApiError, ProviderUnavailable
from supa_artistry.auth.supabase import SupabaseAuthProvider
from supa_artistry.events.types import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED
from supa_artistry.session.storage import MemoryStorage

AUTH_KEY = "test-auth-token"


@pytest.fixture()
def gotrue():
    return FakeGoTrue()


@pytest.fixture()
def auth_storage():
    return MemoryStorage()


@pytest_asyncio.fixture()
async def sb(gotrue, auth_storage):
    provider = SupabaseAuthProvider(
        url="https://project.supabase.co",
        anon_key="anon-key",
        storage=auth_storage,
        storage_key=AUTH_KEY,
        refresh_margin=60,
        jwt_secret="",
        transport=httpx.MockTransport(gotrue),
    )
    yield provider
    await provider.close()


async def _drain(stream):
    stream.close()
    return [e async for e in stream]


# ═══════════════════════════════════════════════════════════
# Sign-in / sign-up
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sign_in_with_password(sb, gotrue, auth_storage):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    stream = sb.subscribe()

    session = await sb.sign_in_with_password("artist@example.com", "hunter22")

    req = gotrue.requests[-1]
    assert req.url.params["grant_type"] == "password"
    assert req.headers["apikey"] == "anon-key"
    assert gotrue.last_json() == {"email": "artist@example.com", "password": "hunter22"}

    assert session.user.id == "u_42"
    assert session.expires_at is not None  # taken from the JWT exp claim
    assert auth_storage.get(AUTH_KEY) is not None
    assert await sb.get_session() == session

    events = await _drain(stream)
    assert [e.type for e in events] == [SIGNED_IN]
    assert events[0].session == session


@pytest.mark.asyncio
async def test_sign_in_rejected(sb, gotrue):
    gotrue.on(
        "POST", "/auth/v1/token", status=400,
        body={"error": "invalid_grant", "error_description": "Invalid login credentials"},
    )
    with pytest.raises(AuthApiError) as exc:
        await sb.sign_in_with_password("artist@example.com", "wrong")
    assert exc.value.message == "Invalid login credentials"
    assert exc.value.status == 400
    assert await sb.get_session() is None


@pytest.mark.asyncio
async def test_server_error_is_provider_unavailable(sb, gotrue):
    gotrue.on("POST", "/auth/v1/token", status=503, body={"message": "upstream down"})
    with pytest.raises(ProviderUnavailable):
        await sb.sign_in_with_password("artist@example.com", "hunter22")


@pytest.mark.asyncio
async def test_network_error_is_provider_unavailable(sb, gotrue):
    gotrue.on("POST", "/auth/v1/token", exc=httpx.ConnectError("connection refused"))
    with pytest.raises(ProviderUnavailable, match="unreachable"):
        await sb.sign_in_with_password("artist@example.com", "hunter22")


@pytest.mark.asyncio
async def test_unconfigured_provider():
    provider = SupabaseAuthProvider(url="", anon_key="", storage=MemoryStorage())
    assert await provider.get_session() is None  # no network needed
    with pytest.raises(ProviderUnavailable, match="not configured"):
        await provider.sign_in_with_password("artist@example.com", "hunter22")
    await provider.close()


@pytest.mark.asyncio
async def test_sign_up_pending_confirmation(sb, gotrue):
    gotrue.on("POST", "/auth/v1/signup", body={"id": "u_9", "email": "new@example.com"})
    stream = sb.subscribe()

    result = await sb.sign_up("new@example.com", "hunter22", redirect_to="http://localhost:8080/")

    assert result is None
    assert gotrue.requests[-1].url.params["redirect_to"] == "http://localhost:8080/"
    assert await _drain(stream) == []


@pytest.mark.asyncio
async def test_sign_up_auto_confirmed(sb, gotrue):
    gotrue.on("POST", "/auth/v1/signup", body=token_response("u_9", "new@example.com"))
    session = await sb.sign_up("new@example.com", "hunter22")
    assert session.user.id == "u_9"
    assert await sb.get_session() == session


@pytest.mark.asyncio
async def test_phone_otp_flow(sb, gotrue):
    gotrue.on("POST", "/auth/v1/otp", body={})
    gotrue.on("POST", "/auth/v1/verify", body=token_response("u_p", None))

    await sb.sign_in_with_otp("+14155552671")
    assert gotrue.last_json() == {"phone": "+14155552671", "create_user": True, "channel": "sms"}

    session = await sb.verify_otp("+14155552671", "123456")
    assert gotrue.last_json() == {"type": "sms", "phone": "+14155552671", "token": "123456"}
    assert session.user.id == "u_p"


@pytest.mark.asyncio
async def test_jwt_secret_rejects_foreign_tokens(gotrue, auth_storage):
    body = token_response()
    body["access_token"] = make_token("u_42", secret="not-the-project-secret-0123456789")
    gotrue.on("POST", "/auth/v1/token", body=body)
    provider = SupabaseAuthProvider(
        url="https://project.supabase.co",
        anon_key="anon-key",
        storage=auth_storage,
        jwt_secret=JWT_SECRET,
        transport=httpx.MockTransport(gotrue),
    )
    with pytest.raises(AuthApiError):
        await provider.sign_in_with_password("artist@example.com", "hunter22")
    await provider.close()


# ═══════════════════════════════════════════════════════════
# Persistence + refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_session_restored_from_storage(gotrue, auth_storage):
    stored = make_session("u_42")
    auth_storage.set(AUTH_KEY, stored.model_dump_json())

    provider = SupabaseAuthProvider(
        url="https://project.supabase.co", anon_key="anon-key",
        storage=auth_storage, storage_key=AUTH_KEY,
        transport=httpx.MockTransport(gotrue),
    )
    assert await provider.get_session() == stored
    assert gotrue.requests == []
    await provider.close()


@pytest.mark.asyncio
async def test_garbage_in_storage_is_discarded(sb, auth_storage):
    auth_storage.set(AUTH_KEY, '{"not": "a session"}')
    assert await sb.get_session() is None
    assert auth_storage.get(AUTH_KEY) is None


@pytest.mark.asyncio
async def test_expiring_session_is_refreshed(sb, gotrue, auth_storage):
    auth_storage.set(AUTH_KEY, make_session("u_42", expires_in=30).model_dump_json())
    gotrue.on("POST", "/auth/v1/token", body=token_response("u_42"))
    stream = sb.subscribe()

    session = await sb.get_session()

    assert gotrue.requests[-1].url.params["grant_type"] == "refresh_token"
    assert gotrue.last_json() == {"refresh_token": "refresh-u_42"}
    assert not session.expires_within(60)
    assert [e.type for e in await _drain(stream)] == [TOKEN_REFRESHED]


@pytest.mark.asyncio
async def test_rejected_refresh_signs_out(sb, gotrue, auth_storage):
    auth_storage.set(AUTH_KEY, make_session("u_42", expires_in=30).model_dump_json())
    gotrue.on("POST", "/auth/v1/token", status=400,
              body={"error_description": "Invalid Refresh Token: Already Used"})
    stream = sb.subscribe()

    assert await sb.refresh_if_needed() is None
    assert auth_storage.get(AUTH_KEY) is None
    assert [e.type for e in await _drain(stream)] == [SIGNED_OUT]


@pytest.mark.asyncio
async def test_refresh_deferred_while_token_still_valid(sb, gotrue, auth_storage):
    stored = make_session("u_42", expires_in=30)
    auth_storage.set(AUTH_KEY, stored.model_dump_json())
    gotrue.on("POST", "/auth/v1/token", exc=httpx.ConnectTimeout("timed out"))

    assert await sb.get_session() == stored


@pytest.mark.asyncio
async def test_refresh_not_needed(sb, gotrue, auth_storage):
    stored = make_session("u_42", expires_in=3600)
    auth_storage.set(AUTH_KEY, stored.model_dump_json())
    assert await sb.refresh_if_needed(60) == stored
    assert gotrue.requests == []


# ═══════════════════════════════════════════════════════════
# Sign-out
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sign_out(sb, gotrue, auth_storage):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    gotrue.on("POST", "/auth/v1/logout", status=204)
    session = await sb.sign_in_with_password("artist@example.com", "hunter22")
    stream = sb.subscribe()

    await sb.sign_out()

    req = gotrue.requests[-1]
    assert req.url.path == "/auth/v1/logout"
    assert req.headers["Authorization"] == f"Bearer {session.access_token}"
    assert await sb.get_session() is None
    assert auth_storage.get(AUTH_KEY) is None
    assert [e.type for e in await _drain(stream)] == [SIGNED_OUT]


@pytest.mark.asyncio
async def test_sign_out_without_session_is_noop(sb, gotrue):
    await sb.sign_out()
    assert gotrue.requests == []


@pytest.mark.asyncio
async def test_sign_out_already_revoked(sb, gotrue):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    gotrue.on("POST", "/auth/v1/logout", status=401, body={"msg": "invalid JWT"})
    await sb.sign_in_with_password("artist@example.com", "hunter22")

    await sb.sign_out()  # no error
    assert await sb.get_session() is None


@pytest.mark.asyncio
async def test_sign_out_network_failure_still_clears(sb, gotrue, auth_storage):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    gotrue.on("POST", "/auth/v1/logout", exc=httpx.ConnectError("connection refused"))
    await sb.sign_in_with_password("artist@example.com", "hunter22")
    stream = sb.subscribe()

    with pytest.raises(ProviderUnavailable):
        await sb.sign_out()

    assert await sb.get_session() is None
    assert auth_storage.get(AUTH_KEY) is None
    assert [e.type for e in await _drain(stream)] == [SIGNED_OUT]


@pytest.mark.asyncio
async def test_sign_out_rejected_still_clears(sb, gotrue, auth_storage):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    gotrue.on("POST", "/auth/v1/logout", status=400, body={"msg": "bad jwt"})
    await sb.sign_in_with_password("artist@example.com", "hunter22")
    stream = sb.subscribe()

    with pytest.raises(ProviderUnavailable, match="bad jwt") as exc:
        await sb.sign_out()

    assert isinstance(exc.value.__cause__, AuthApiError)
    assert await sb.get_session() is None
    assert auth_storage.get(AUTH_KEY) is None
    assert [e.type for e in await _drain(stream)] == [SIGNED_OUT]


@pytest.mark.asyncio
async def test_sign_out_unknown_session_is_not_an_error(sb, gotrue):
    gotrue.on("POST", "/auth/v1/token", body=token_response())
    gotrue.on("POST", "/auth/v1/logout", status=403, body={"msg": "Session not found"})
    await sb.sign_in_with_password("artist@example.com", "hunter22")

    await sb.sign_out()
    assert await sb.get_session() is None


@pytest.mark.asyncio
async def test_foreign_token_error_keeps_cause(gotrue, auth_storage):
    body = token_response()
    body["access_token"] = make_token("u_42", secret="not-the-project-secret-0123456789")
    gotrue.on("POST", "/auth/v1/token", body=body)
    provider = SupabaseAuthProvider(
        url="https://project.supabase.co",
        anon_key="anon-key",
        storage=auth_storage,
        jwt_secret=JWT_SECRET,
        transport=httpx.MockTransport(gotrue),
    )
    with pytest.raises(AuthApiError) as exc:
        await provider.sign_in_with_password("artist@example.com", "hunter22")
    assert exc.value.status == 401
    assert isinstance(exc.value.__cause__, TokenError)
    await provider.close()
