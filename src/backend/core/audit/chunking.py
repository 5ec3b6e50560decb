"""
Greedy token-budgeted partitioning of conversation records.
"""

from __future__ import annotations

from collections.abc import Sequence

from core.audit.transcript import RECORD_SEPARATOR, serialize_record
from core.constants import MAP_OUTPUT_RESERVED_TOKENS, PROMPT_RESERVED_TOKENS
from models.audit_models import Chunk, ConversationRecord
from utils.token_utils import TokenEstimator, estimate_tokens


def map_token_budget(context_window: int) -> int:
    """Transcript tokens one map call may carry: the window minus prompt and output reserves.

    May be zero or negative for small windows; callers must reject that.
    """
    return context_window - PROMPT_RESERVED_TOKENS - MAP_OUTPUT_RESERVED_TOKENS


def partition_records(
    records: Sequence[ConversationRecord],
    budget: int,
    estimator: TokenEstimator = estimate_tokens,
) -> list[Chunk]:
    """Group records into chunks whose estimated size fits the budget.

    Records keep their input order and each lands in exactly one chunk. A
    record joins the current chunk when the running total stays at or under
    the budget; otherwise the chunk is closed and the record starts the next
    one. A record that alone exceeds the budget becomes its own oversized
    chunk rather than being dropped.

    The running total counts the separator between records, so it bounds the
    estimate of the chunk's serialized text from above.

    Args:
        records: Records in the order they should be analyzed
        budget: Maximum estimated tokens per chunk (> 0)
        estimator: Token estimator applied to each serialized record

    Returns:
        Chunks in order; empty when there are no records.

    Raises:
        ValueError: If budget is not a positive integer.
    """
    if isinstance(budget, bool) or not isinstance(budget, int) or budget <= 0:
        raise ValueError(f"budget must be a positive integer, got {budget!r}")

    separator_tokens = estimator(RECORD_SEPARATOR)
    chunks: list[Chunk] = []
    current: list[ConversationRecord] = []
    current_tokens = 0

    for record in records:
        record_tokens = estimator(serialize_record(record))

        if current and current_tokens + separator_tokens + record_tokens > budget:
            chunks.append(Chunk(records=tuple(current), estimated_tokens=current_tokens))
            current = []
            current_tokens = 0

        if current:
            current_tokens += separator_tokens
        current.append(record)
        current_tokens += record_tokens

    if current:
        chunks.append(Chunk(records=tuple(current), estimated_tokens=current_tokens))

    return chunks
