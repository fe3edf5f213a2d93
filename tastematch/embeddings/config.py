from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class EmbeddingConfig:
    model_name: str = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    dimension: int = 384
    timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "5.0"))
    max_signals: int = 50
    combine_weights: dict[str, float] = field(
        default_factory=lambda: {"onboarding": 0.3, "chat": 0.4, "reviews": 0.3}
    )


DEFAULT_EMBEDDING_CONFIG = EmbeddingConfig()
