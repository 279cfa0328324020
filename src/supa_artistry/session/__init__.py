"""Session identity — who is using the app right now.

Learn: Two kinds of identity can exist:
1. Authenticated → issued by the auth provider (Supabase)
2. Guest → an anonymous token generated locally and kept in durable storage

The resolver collapses both into one ResolvedSession value. An
authenticated identity always wins and wipes out any guest token.
"""
