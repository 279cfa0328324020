"""Auth event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover every event the provider can push.
The names match what the Supabase client libraries emit.
"""

# ─── Provider → resolver ─────────────────────────────────

INITIAL_SESSION = "INITIAL_SESSION"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

ALL_EVENTS = frozenset(
    {INITIAL_SESSION, SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, USER_UPDATED}
)
