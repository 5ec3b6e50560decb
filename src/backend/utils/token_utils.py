"""
Token estimation for sizing transcript chunks.

The default estimator is a character-ratio heuristic: it needs no network and
no tokenizer files, and it is monotonic in input length. An exact tiktoken
count is available for deployments that prefer precision over speed; either
one plugs into the chunk partitioner through get_token_estimator().
"""

from __future__ import annotations

import math

from collections.abc import Callable
from functools import lru_cache
from hashlib import blake2b
from typing import Any

import tiktoken

from core.constants import CHARS_PER_TOKEN, TOKEN_CACHE_SIZE, TokenEstimatorName

#: Signature shared by all token estimators.
TokenEstimator = Callable[[str], int]

# Cache for tiktoken encoders to avoid recreation
_encoder_cache: dict[str, Any] = {}


def estimate_tokens(text: str) -> int:
    """Approximate the number of model tokens in text.

    Uses the fixed CHARS_PER_TOKEN ratio, rounded up. Intentionally coarse:
    the result only has to be conservative enough to keep a chunk inside the
    model's context window.
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _get_encoder(model: str) -> Any:
    """Get cached encoder for model."""
    if model not in _encoder_cache:
        try:
            _encoder_cache[model] = tiktoken.encoding_for_model(model)
        except KeyError:
            # Unknown to tiktoken (e.g. Claude, Gemini): use the modern default
            _encoder_cache[model] = tiktoken.get_encoding("o200k_base")
    return _encoder_cache[model]


def _hash_text(text: str) -> str:
    """Fast hash of text for cache keys (Blake2b for speed)."""
    return blake2b(text.encode("utf-8"), digest_size=16).hexdigest()


@lru_cache(maxsize=TOKEN_CACHE_SIZE)
def _count_tokens_cached(text_hash: str, text: str, model: str) -> int:
    return len(_get_encoder(model).encode(text))


def count_tokens(text: str, model: str = "gpt-4o") -> int:
    """Count tokens exactly with tiktoken."""
    return _count_tokens_cached(_hash_text(text), text, model)


def get_token_estimator(name: TokenEstimatorName = "heuristic", model: str = "gpt-4o") -> TokenEstimator:
    """Return the estimator selected by the TOKEN_ESTIMATOR setting.

    Args:
        name: "heuristic" (character ratio) or "tiktoken" (exact count)
        model: Model whose encoding the tiktoken estimator should use
    """
    if name == "heuristic":
        return estimate_tokens
    if name == "tiktoken":
        return lambda text: count_tokens(text, model)
    raise ValueError(f"Unknown token estimator: {name!r}")
