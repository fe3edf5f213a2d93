"""
Embeddings layer for user taste profiles.

Responsibilities:
- Load a sentence-transformer model and encode text under a bounded timeout.
- Decide when a user's per-source embeddings need (re)computing.
- Keep each embedding paired with the exact text that produced it.
- Combine source embeddings and resolve the best one by priority.
"""
