"""
Domain models for the audit report pipeline.

Records are frozen dataclasses: the pipeline reads transcripts, it never
edits them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

#: Actor role of a conversation turn.
TurnRole = Literal["user", "assistant"]

#: Progress phase names carried by control frames.
Phase = Literal["map", "reduce", "direct"]


@dataclass(frozen=True, slots=True)
class Turn:
    """One message in a conversation thread."""

    role: TurnRole
    content: str
    created_at: datetime
    model_id: str | None = None
    tokens_used: int = 0


@dataclass(frozen=True, slots=True)
class ConversationRecord:
    """A conversation thread with its turns in creation order."""

    title: str
    author: str
    created_at: datetime
    turns: tuple[Turn, ...] = ()

    @property
    def turn_count(self) -> int:
        return len(self.turns)


@dataclass(frozen=True, slots=True)
class Chunk:
    """An ordered, non-empty group of records analyzed in one model call.

    Attributes:
        records: Records in their original relative order
        estimated_tokens: Upper bound on the token estimate of the chunk's
            serialized text (record estimates plus separators)
    """

    records: tuple[ConversationRecord, ...]
    estimated_tokens: int

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def turn_count(self) -> int:
        return sum(record.turn_count for record in self.records)


@dataclass(frozen=True, slots=True)
class IntermediateAnalysis:
    """Map-stage output for one chunk, tagged for traceability."""

    index: int
    total: int
    record_count: int
    turn_count: int
    text: str

    @property
    def ordinal(self) -> int:
        """1-based position shown to the model and the client."""
        return self.index + 1


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token usage reported by one model call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class Completion:
    """Result of a non-streaming model call."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True, slots=True)
class ProgressFrame:
    """Out-of-band progress signal: current/total units of a phase."""

    current: int
    total: int
    phase: Phase


@dataclass(frozen=True, slots=True)
class ReportScope:
    """What one report covers; parameterizes the reduce prompt."""

    date_from: date
    date_to: date
    record_count: int
    turn_count: int
