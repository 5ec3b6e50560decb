"""
Token usage accounting for one report run.
"""

from __future__ import annotations

from typing import Protocol

from models.audit_models import TokenUsage


class QuotaStore(Protocol):
    """Counter the run's total usage is charged to."""

    async def increment_usage(self, amount: int) -> None: ...


class UsageTally:
    """Running sum of every model call's usage, committed at most once.

    Each call's usage is added exactly once (from its own completion result or
    stream callback); nothing is estimated here.
    """

    def __init__(self) -> None:
        self._input_tokens = 0
        self._output_tokens = 0
        self._calls = 0
        self._committed = False

    def add(self, usage: TokenUsage) -> None:
        self._input_tokens += usage.input_tokens
        self._output_tokens += usage.output_tokens
        self._calls += 1

    @property
    def input_tokens(self) -> int:
        return self._input_tokens

    @property
    def output_tokens(self) -> int:
        return self._output_tokens

    @property
    def total(self) -> int:
        return self._input_tokens + self._output_tokens

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def committed(self) -> bool:
        return self._committed

    async def commit(self, store: QuotaStore) -> int:
        """Charge the total to the store.

        Returns:
            The amount committed, 0 if there was nothing to commit or a
            commit already happened.
        """
        if self._committed:
            return 0
        amount = self.total
        if amount <= 0:
            return 0
        # Marked before the await: a failed store write is never retried
        self._committed = True
        await store.increment_usage(amount)
        return amount
