"""
Transcript serialization for model consumption.

The output must be byte-identical for identical input: the partitioner sizes
chunks on this text and the map stage sends the same text, so any drift
would make the budget estimate wrong.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from models.audit_models import ConversationRecord, Turn

#: Separator placed between serialized records.
RECORD_SEPARATOR = "\n\n"

_ROLE_LABELS = {"user": "User", "assistant": "AI"}


def _to_utc(value: datetime) -> datetime:
    # Naive timestamps come from the store as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_turn(turn: Turn) -> str:
    """Render one turn as a single transcript line."""
    time = _to_utc(turn.created_at).strftime("%H:%M")
    role = _ROLE_LABELS.get(turn.role, turn.role)
    model = turn.model_id or "-"
    return f"[{time}] {role} ({model}, {turn.tokens_used} tokens): {turn.content}"


def serialize_record(record: ConversationRecord) -> str:
    """Render one thread: header block followed by one line per turn."""
    lines = [
        f"=== Thread: {record.title} ===",
        f"User: {record.author} | Created: {_to_utc(record.created_at).date().isoformat()}",
        "---",
    ]
    lines.extend(serialize_turn(turn) for turn in record.turns)
    return "\n".join(lines)


def serialize_records(records: Iterable[ConversationRecord]) -> str:
    """Render records in order, separated by a blank line."""
    return RECORD_SEPARATOR.join(serialize_record(record) for record in records)
