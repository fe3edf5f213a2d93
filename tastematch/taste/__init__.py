"""
Taste profile layer.

Responsibilities:
- Hold the per-user taste profile and the append-only taste signal log.
- Render a deterministic natural-language summary of a user's preferences.
- Provide per-source texts (onboarding, chat, reviews) for embedding.
"""
