"""
Read-only access to the conversation transcripts being audited.

A thread is in scope when it belongs to the organization and was created in
the requested range; all of its messages are included regardless of when
they were written.
"""

from __future__ import annotations

import time

from datetime import datetime
from typing import Any
from uuid import UUID

import asyncpg

from models.audit_models import ConversationRecord, Turn
from models.schemas.audit import AuditScopeResponse
from utils.db_utils import acquire_connection, retry_read
from utils.metrics import db_query_duration_seconds

_THREAD_FILTER = """
    t.organization_id = $1
    AND t.created_at >= $2
    AND t.created_at <= $3
    AND ($4::uuid IS NULL OR t.user_id = $4)
"""


def _group_records(rows: list[asyncpg.Record]) -> list[ConversationRecord]:
    """Fold joined thread/message rows into records, keeping row order."""
    records: list[ConversationRecord] = []
    current_id: Any = None
    header: dict[str, Any] = {}
    turns: list[Turn] = []

    def flush() -> None:
        if current_id is not None:
            records.append(
                ConversationRecord(
                    title=header["title"],
                    author=header["author"],
                    created_at=header["created_at"],
                    turns=tuple(turns),
                )
            )

    for row in rows:
        if row["thread_id"] != current_id:
            flush()
            current_id = row["thread_id"]
            header = {
                "title": row["thread_title"] or "Untitled",
                "author": row["author_email"],
                "created_at": row["thread_created_at"],
            }
            turns = []
        # LEFT JOIN: a thread without messages yields one row with NULL message columns
        if row["message_id"] is not None:
            turns.append(
                Turn(
                    role=row["message_role"].lower(),
                    content=row["message_content"] or "",
                    created_at=row["message_created_at"],
                    model_id=row["message_model_id"],
                    tokens_used=row["message_tokens_used"] or 0,
                )
            )
    flush()
    return records


class TranscriptStore:
    """Queries threads and messages for the audit pipeline."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @retry_read()
    async def fetch_records(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        user_id: UUID | None = None,
    ) -> list[ConversationRecord]:
        """Threads in range with their messages, oldest thread first."""
        started = time.perf_counter()
        async with acquire_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT
                    t.id AS thread_id,
                    t.title AS thread_title,
                    t.created_at AS thread_created_at,
                    u.email AS author_email,
                    m.id AS message_id,
                    m.role AS message_role,
                    m.content AS message_content,
                    m.model_id AS message_model_id,
                    m.tokens_used AS message_tokens_used,
                    m.created_at AS message_created_at
                FROM threads t
                JOIN users u ON u.id = t.user_id
                LEFT JOIN messages m ON m.thread_id = t.id
                WHERE {_THREAD_FILTER}
                ORDER BY t.created_at ASC, t.id ASC, m.created_at ASC, m.id ASC
                """,
                organization_id,
                start,
                end,
                user_id,
            )
        db_query_duration_seconds.labels(query_type="select").observe(time.perf_counter() - started)
        return _group_records(rows)

    @retry_read()
    async def count_scope(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        user_id: UUID | None = None,
    ) -> AuditScopeResponse:
        """Thread, message and author counts for the same filter, without loading content."""
        started = time.perf_counter()
        async with acquire_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT
                    COUNT(*) AS thread_count,
                    COUNT(DISTINCT t.user_id) AS user_count,
                    COALESCE(SUM(
                        (SELECT COUNT(*) FROM messages m WHERE m.thread_id = t.id)
                    ), 0)::bigint AS message_count
                FROM threads t
                WHERE {_THREAD_FILTER}
                """,
                organization_id,
                start,
                end,
                user_id,
            )
        db_query_duration_seconds.labels(query_type="select").observe(time.perf_counter() - started)
        return AuditScopeResponse(
            thread_count=row["thread_count"] if row else 0,
            message_count=row["message_count"] if row else 0,
            user_count=row["user_count"] if row else 0,
        )
