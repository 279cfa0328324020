"""Authentication — the boundary to the hosted auth service.

Learn: Everything here is about the provider side of identity:
1. provider.py → abstract provider + ordered event streams
2. supabase.py → Supabase GoTrue over HTTP
3. jwt.py → reading claims out of access tokens
4. refresher.py → background token refresh

The session resolver (supa_artistry.session) consumes these; it never
talks to the network itself.
"""
