"""Supa Artistry — AI creativity demo client.

Resolves who the user is (signed in through Supabase, or browsing as a
guest) and lets them try simulated generative-AI features: text, image
analysis, text+image, and video generation.
"""

__version__ = "0.1.0"
