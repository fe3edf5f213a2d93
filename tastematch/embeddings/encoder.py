from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import numpy as np
from sentence_transformers import SentenceTransformer

from ..errors import EmbeddingServiceError
from .config import DEFAULT_EMBEDDING_CONFIG, EmbeddingConfig

logger = logging.getLogger(__name__)

_model: SentenceTransformer | None = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="embedding")


def _get_model(config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> SentenceTransformer:
    global _model
    if _model is None:
        _model = SentenceTransformer(config.model_name)
    return _model


def encode_text(text: str, config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> np.ndarray:
    """Encode a single string into a 1-D embedding vector."""
    model = _get_model(config)
    return model.encode(text, show_progress_bar=False)


def embed_text(text: str, config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> list[float]:
    """
    Call the embedding service with a bounded wait.

    Raises EmbeddingServiceError on timeout or model failure. Retrying is
    left to the caller.
    """
    future = _executor.submit(encode_text, text, config)
    try:
        vector = future.result(timeout=config.timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise EmbeddingServiceError(
            f"Embedding timed out after {config.timeout}s"
        ) from exc
    except Exception as exc:
        raise EmbeddingServiceError(f"Embedding failed: {exc}") from exc

    values = np.asarray(vector, dtype=float).ravel()
    if values.size == 0:
        raise EmbeddingServiceError("Embedding service returned an empty vector")
    return values.tolist()
