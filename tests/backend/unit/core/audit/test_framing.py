"""Tests for the report stream framing: server channel and client parser."""

from __future__ import annotations

import asyncio

import pytest

from core.audit.framing import (
    FramingError,
    ReportChannel,
    ReportStarted,
    ReportStreamParser,
    ReportText,
    format_error_marker,
    format_progress_frame,
    parse_progress_line,
    parse_report_stream,
)
from models.audit_models import ProgressFrame


async def drain(channel: ReportChannel) -> bytes:
    return b"".join([data async for data in channel])


# ============================================================================
# Formatting
# ============================================================================


def test_format_progress_frame() -> None:
    assert format_progress_frame(2, 5, "map") == "[PROGRESS]2/5/map\n"
    assert format_progress_frame(0, 0, "reduce") == "[PROGRESS]0/0/reduce\n"


def test_format_error_marker_flattens_newlines() -> None:
    assert format_error_marker("upstream\nfailed  badly") == "\n\n[ERROR: upstream failed badly]"


@pytest.mark.parametrize(
    "line, expected",
    [
        ("[PROGRESS]1/4/map", ProgressFrame(1, 4, "map")),
        ("[PROGRESS]0/1/direct", ProgressFrame(0, 1, "direct")),
        ("[PROGRESS]1/4", None),
        ("[PROGRESS]a/4/map", None),
        ("[PROGRESS]1/4/other", None),
        ("PROGRESS 1/4/map", None),
    ],
)
def test_parse_progress_line(line: str, expected: ProgressFrame | None) -> None:
    assert parse_progress_line(line) == expected


# ============================================================================
# ReportChannel
# ============================================================================


@pytest.mark.asyncio
async def test_channel_frames_in_order() -> None:
    channel = ReportChannel()
    channel.send_progress(1, 2, "map")
    channel.send_progress(2, 2, "map")
    channel.send_progress(0, 0, "reduce")
    channel.start_report()
    channel.send_text("## Report\n")
    channel.send_text("body")
    channel.close()

    data = await drain(channel)

    assert data == b"[PROGRESS]1/2/map\n[PROGRESS]2/2/map\n[PROGRESS]0/0/reduce\n[REPORT]\n## Report\nbody"


@pytest.mark.asyncio
async def test_channel_rejects_progress_after_report() -> None:
    channel = ReportChannel()
    channel.start_report()

    with pytest.raises(FramingError):
        channel.send_progress(1, 1, "map")


def test_channel_rejects_text_before_sentinel() -> None:
    channel = ReportChannel()

    with pytest.raises(FramingError):
        channel.send_text("too early")


def test_channel_rejects_second_sentinel() -> None:
    channel = ReportChannel()
    channel.start_report()

    with pytest.raises(FramingError):
        channel.start_report()


@pytest.mark.asyncio
async def test_channel_drops_writes_after_close() -> None:
    channel = ReportChannel()
    channel.start_report()
    assert channel.send_text("kept") is True
    channel.close()

    assert channel.send_text("dropped") is False
    assert channel.send_error("dropped too") is False
    assert await drain(channel) == b"[REPORT]\nkept"


def test_channel_close_is_idempotent() -> None:
    channel = ReportChannel()
    channel.close()
    channel.close()

    assert channel.is_closed


def test_channel_counts_utf8_bytes() -> None:
    channel = ReportChannel()
    channel.start_report()
    channel.send_text("監査")

    assert channel.bytes_written == len("[REPORT]\n".encode()) + len("監査".encode())


def test_channel_empty_text_is_noop() -> None:
    channel = ReportChannel()
    channel.start_report()
    before = channel.bytes_written

    assert channel.send_text("") is True
    assert channel.bytes_written == before


@pytest.mark.asyncio
async def test_channel_delivers_while_producer_runs() -> None:
    channel = ReportChannel()
    received: list[bytes] = []

    async def consume() -> None:
        async for data in channel:
            received.append(data)

    consumer = asyncio.create_task(consume())
    channel.send_progress(1, 1, "direct")
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert received == [b"[PROGRESS]1/1/direct\n"]

    channel.close()
    await consumer


# ============================================================================
# ReportStreamParser
# ============================================================================


def test_parse_complete_synthesis_stream() -> None:
    stream = "[PROGRESS]1/2/map\n[PROGRESS]2/2/map\n[PROGRESS]0/0/reduce\n[REPORT]\n## Summary\nAll good."

    result = parse_report_stream(stream)

    assert result.progress == [ProgressFrame(1, 2, "map"), ProgressFrame(2, 2, "map"), ProgressFrame(0, 0, "reduce")]
    assert result.started is True
    assert result.report == "## Summary\nAll good."
    assert result.error is None
    assert result.complete is True


def test_parse_report_text_may_look_like_frames() -> None:
    stream = "[PROGRESS]0/1/direct\n[REPORT]\n[PROGRESS]9/9/map\n[REPORT]\ntext"

    result = parse_report_stream(stream)

    assert result.progress == [ProgressFrame(0, 1, "direct")]
    assert result.report == "[PROGRESS]9/9/map\n[REPORT]\ntext"


def test_parse_error_after_partial_report() -> None:
    partial = "x" * 500
    stream = f"[PROGRESS]0/1/direct\n[REPORT]\n{partial}\n\n[ERROR: stream interrupted]"

    result = parse_report_stream(stream)

    assert result.started is True
    assert result.report == partial
    assert result.error == "stream interrupted"
    assert result.complete is False


def test_parse_error_without_sentinel() -> None:
    stream = "[PROGRESS]1/3/map\n[PROGRESS]2/3/map\n\n\n[ERROR: map call 2 failed]"

    result = parse_report_stream(stream)

    assert result.started is False
    assert result.report is None
    assert result.error == "map call 2 failed"
    assert [frame.current for frame in result.progress] == [1, 2]


def test_parse_stream_cut_before_sentinel_is_incomplete() -> None:
    result = parse_report_stream("[PROGRESS]1/3/map\n")

    assert result.started is False
    assert result.error is None
    assert result.complete is False


def test_parser_incremental_events_with_split_utf8() -> None:
    parser = ReportStreamParser()
    payload = "[PROGRESS]0/1/direct\n[REPORT]\n監査レポート".encode()

    events = []
    for i in range(0, len(payload), 3):
        events.extend(parser.feed(payload[i : i + 3]))
    result = parser.finish()

    assert events[0] == ProgressFrame(0, 1, "direct")
    assert ReportStarted() in events
    assert "".join(e.text for e in events if isinstance(e, ReportText)) == "監査レポート"
    assert result.report == "監査レポート"


def test_parser_handles_sentinel_and_text_in_one_read() -> None:
    parser = ReportStreamParser()

    events = parser.feed(b"[REPORT]\nhello")

    assert events == [ReportStarted(), ReportText("hello")]
    assert parser.started


def test_bracket_inside_report_is_not_an_error() -> None:
    result = parse_report_stream("[REPORT]\nSee [ERROR: codes] table\n\nnext [1]")

    assert result.error is None
    assert result.report == "See [ERROR: codes] table\n\nnext [1]"
