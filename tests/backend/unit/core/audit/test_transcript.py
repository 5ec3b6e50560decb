"""Tests for transcript serialization."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from core.audit.transcript import RECORD_SEPARATOR, serialize_record, serialize_records, serialize_turn
from models.audit_models import ConversationRecord, Turn

CREATED = datetime(2025, 1, 15, 9, 30, tzinfo=UTC)


def test_serialize_turn_user_without_model() -> None:
    turn = Turn(role="user", content="How do I reset my password?", created_at=CREATED)

    assert serialize_turn(turn) == "[09:30] User (-, 0 tokens): How do I reset my password?"


def test_serialize_turn_assistant_with_model_and_tokens() -> None:
    turn = Turn(role="assistant", content="Use the portal.", created_at=CREATED, model_id="gpt-4o", tokens_used=42)

    assert serialize_turn(turn) == "[09:30] AI (gpt-4o, 42 tokens): Use the portal."


def test_serialize_turn_converts_to_utc() -> None:
    jst = timezone(timedelta(hours=9))
    turn = Turn(role="user", content="hi", created_at=datetime(2025, 1, 15, 18, 5, tzinfo=jst))

    assert serialize_turn(turn).startswith("[09:05]")


def test_serialize_turn_naive_timestamp_is_utc() -> None:
    turn = Turn(role="user", content="hi", created_at=datetime(2025, 1, 15, 23, 59))

    assert serialize_turn(turn).startswith("[23:59]")


def test_serialize_record_layout() -> None:
    record = ConversationRecord(
        title="Quarterly numbers",
        author="bob@example.com",
        created_at=CREATED,
        turns=(
            Turn(role="user", content="Summarize Q4", created_at=CREATED),
            Turn(role="assistant", content="Revenue grew", created_at=CREATED, model_id="gpt-4o", tokens_used=7),
        ),
    )

    assert serialize_record(record).split("\n") == [
        "=== Thread: Quarterly numbers ===",
        "User: bob@example.com | Created: 2025-01-15",
        "---",
        "[09:30] User (-, 0 tokens): Summarize Q4",
        "[09:30] AI (gpt-4o, 7 tokens): Revenue grew",
    ]


def test_serialize_record_without_turns_keeps_header() -> None:
    record = ConversationRecord(title="Empty", author="a@example.com", created_at=CREATED)

    assert serialize_record(record) == "=== Thread: Empty ===\nUser: a@example.com | Created: 2025-01-15\n---"


def test_serialize_records_joins_in_order(record_factory) -> None:
    first = record_factory(title="First")
    second = record_factory(title="Second")

    text = serialize_records([first, second])

    assert text == serialize_record(first) + RECORD_SEPARATOR + serialize_record(second)
    assert text.index("First") < text.index("Second")


def test_serialize_records_is_deterministic(record_factory) -> None:
    records = [record_factory(title=f"T{i}") for i in range(5)]

    assert serialize_records(records) == serialize_records(list(records))


def test_serialize_records_empty() -> None:
    assert serialize_records([]) == ""
