"""
Match scoring engine.

Responsibilities:
- Read the enriched restaurant cache (ratings, summary and reviews embeddings).
- Read the social graph (follows and followee reviews).
- Blend taste similarity, external rating and social proof into a 0-100 score.
- Fall back to a single named default whenever a signal is unavailable.
"""
