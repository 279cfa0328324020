"""Auth flow service — the sign-in page's actions.

Learn: Each action validates the form input, calls the provider, and
turns the outcome into a Notice the front end can show. Failures never
raise out of here: a rejected password or an unreachable auth service
becomes a "destructive" notice with the service's own message.

Flows:
- email sign-up → confirmation email (or immediate session if auto-confirm)
- email sign-in → session
- phone → SMS code → verify → session
- continue as guest → anonymous token via the session resolver
"""

import structlog
from pydantic import ValidationError

from supa_artistry.auth.provider import AuthProviderError
from supa_artistry.auth.supabase import SupabaseAuthProvider
from supa_artistry.config import settings
from supa_artistry.schemas.auth import EmailCredentials, PhoneNumber, VerificationCode
from supa_artistry.schemas.genai import Notice
from supa_artistry.session.resolver import InvalidGuestTransition, SessionResolver

logger = structlog.get_logger()

_FIELD_MESSAGES = {
    "email": "Please enter a valid email address",
    "password": "Password must be at least 6 characters",
    "phone": "Please enter a valid phone number",
    "code": "Please enter the 6-digit code",
}


def _failure(title: str, description: str) -> Notice:
    return Notice(title=title, description=description, variant="destructive")


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = first["loc"][0] if first.get("loc") else None
    return _FIELD_MESSAGES.get(field, first["msg"])


class AuthService:
    """Sign-up, sign-in, phone verification and guest entry."""

    def __init__(self, provider: SupabaseAuthProvider, resolver: SessionResolver):
        self.provider = provider
        self.resolver = resolver

    async def is_signed_in(self) -> bool:
        """True if the provider already has a session (skip the sign-in page)."""
        return await self.provider.get_session() is not None

    # ─── Email ────────────────────────────────────────────

    async def sign_up_email(self, email: str, password: str) -> Notice:
        try:
            creds = EmailCredentials(email=email, password=password)
        except ValidationError as e:
            return _failure("Sign up failed", _validation_message(e))

        try:
            session = await self.provider.sign_up(
                creds.email, creds.password, redirect_to=settings.site_url
            )
        except AuthProviderError as e:
            logger.info("auth_flow.sign_up_failed", email=creds.email, error=str(e))
            return _failure("Sign up failed", str(e))

        if session is not None:
            return Notice(title="Welcome!", description="Your account is ready")
        return Notice(title="Check your email", description="We've sent you a confirmation link")

    async def sign_in_email(self, email: str, password: str) -> Notice:
        try:
            creds = EmailCredentials(email=email, password=password)
        except ValidationError as e:
            return _failure("Sign in failed", _validation_message(e))

        try:
            await self.provider.sign_in_with_password(creds.email, creds.password)
        except AuthProviderError as e:
            logger.info("auth_flow.sign_in_failed", email=creds.email, error=str(e))
            return _failure("Sign in failed", str(e))

        return Notice(title="Welcome back!", description=f"Signed in as {creds.email}")

    # ─── Phone ────────────────────────────────────────────

    async def send_phone_code(self, phone: str) -> Notice:
        try:
            number = PhoneNumber(phone=phone)
        except ValidationError as e:
            return _failure("Phone sign up failed", _validation_message(e))

        try:
            await self.provider.sign_in_with_otp(number.phone)
        except AuthProviderError as e:
            return _failure("Phone sign up failed", str(e))

        return Notice(
            title="Verification code sent",
            description="Check your phone for the verification code",
        )

    async def verify_phone_code(self, phone: str, code: str) -> Notice:
        try:
            form = VerificationCode(phone=phone, code=code.strip())
        except ValidationError as e:
            return _failure("Verification failed", _validation_message(e))

        try:
            await self.provider.verify_otp(form.phone, form.code, type="sms")
        except AuthProviderError as e:
            return _failure("Verification failed", str(e))

        return Notice(title="Welcome!", description="Successfully verified and signed in")

    # ─── Guest ────────────────────────────────────────────

    def continue_as_guest(self) -> Notice:
        try:
            self.resolver.continue_as_guest()
        except InvalidGuestTransition as e:
            return _failure("Guest mode unavailable", str(e))
        return Notice(title="Welcome!", description="You're browsing as a guest")
