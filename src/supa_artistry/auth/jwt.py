"""JWT access token inspection.

Learn: Supabase access tokens are JWTs signed with the project's JWT
secret (HS256). The client doesn't need to trust them (the server
checks every request), but it does need two claims:
- exp → when to refresh
- sub → who the token belongs to

If a JWT secret is configured we verify the signature too; otherwise
the claims are read without verification.
"""

from typing import Optional

import jwt

from supa_artistry.config import settings


class TokenError(Exception):
    """Raised when a token can't be decoded or fails verification."""


def decode_access_token(token: str, secret: Optional[str] = None) -> dict:
    """Decode a JWT access token and return its claims.

    Raises TokenError on failure.
    """
    secret = settings.supabase_jwt_secret if secret is None else secret
    try:
        if secret:
            return jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                options={"verify_aud": False},
            )
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


def token_expiry(token: str) -> Optional[int]:
    """Return the `exp` claim (epoch seconds), or None if absent/unreadable."""
    try:
        claims = jwt.decode(
            token, options={"verify_signature": False, "verify_exp": False}
        )
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    return int(exp) if isinstance(exp, (int, float)) else None
