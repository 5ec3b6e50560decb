"""
Line framing for the audit report stream.

One byte stream carries both progress control frames and the report body:

    [PROGRESS]<current>/<total>/<phase>\\n    zero or more
    [REPORT]\\n                                at most once
    <report text, unframed>
    \\n\\n[ERROR: <message>]                   only if the run failed

Everything after the [REPORT] line is report text, including newlines. A
stream that ends without [REPORT], or that ends with the error marker, is not
a complete report.

ReportChannel is the server side (a queue-backed async byte iterator);
ReportStreamParser is the client side.
"""

from __future__ import annotations

import asyncio
import codecs

from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from core.constants import ERROR_MARKER_PREFIX, PROGRESS_FRAME_PREFIX, REPORT_SENTINEL
from models.audit_models import Phase, ProgressFrame

_PHASES: frozenset[str] = frozenset({"map", "reduce", "direct"})

_ERROR_MARKER_OPENING = "\n\n" + ERROR_MARKER_PREFIX


class FramingError(RuntimeError):
    """Raised when a write would break the frame ordering."""


def format_progress_frame(current: int, total: int, phase: Phase) -> str:
    return f"{PROGRESS_FRAME_PREFIX}{current}/{total}/{phase}\n"


def format_report_sentinel() -> str:
    return f"{REPORT_SENTINEL}\n"


def format_error_marker(message: str) -> str:
    # Keep the marker on one line so the client can always find its opening
    flat = " ".join(message.split())
    return f"{_ERROR_MARKER_OPENING}{flat}]"


class ReportChannel:
    """Queue-backed duplex byte channel for one report.

    Writes never block and are visible to the consumer immediately. After
    close(), by either side, writes are silently dropped, so a producer can
    keep running after the client has gone away.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False
        self._report_started = False
        self._bytes_written = 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def report_started(self) -> bool:
        return self._report_started

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    def write(self, text: str) -> bool:
        """Queue text for the consumer. Returns False if the channel is closed."""
        if self._closed:
            return False
        data = text.encode("utf-8")
        self._queue.put_nowait(data)
        self._bytes_written += len(data)
        return True

    def send_progress(self, current: int, total: int, phase: Phase) -> bool:
        if self._report_started:
            raise FramingError("progress frame after report start")
        return self.write(format_progress_frame(current, total, phase))

    def start_report(self) -> bool:
        if self._report_started:
            raise FramingError("report sentinel already sent")
        self._report_started = True
        return self.write(format_report_sentinel())

    def send_text(self, text: str) -> bool:
        if not self._report_started:
            raise FramingError("report text before report sentinel")
        if not text:
            return not self._closed
        return self.write(text)

    def send_error(self, message: str) -> bool:
        return self.write(format_error_marker(message))

    def close(self) -> None:
        """End the stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


@dataclass(frozen=True, slots=True)
class ReportStarted:
    """Parser event: the [REPORT] sentinel was received."""


@dataclass(frozen=True, slots=True)
class ReportText:
    """Parser event: a piece of report body text."""

    text: str


ParserEvent = ProgressFrame | ReportStarted | ReportText


@dataclass
class ParsedReport:
    """Outcome of reading a whole report stream.

    Attributes:
        progress: Progress frames in arrival order
        report: Report body (without the error marker), None if never started
        error: Message of the trailing error marker, if any
        started: Whether the [REPORT] sentinel arrived
    """

    progress: list[ProgressFrame] = field(default_factory=list)
    report: str | None = None
    error: str | None = None
    started: bool = False

    @property
    def complete(self) -> bool:
        """True only for a started report that did not end in an error."""
        return self.started and self.error is None


def parse_progress_line(line: str) -> ProgressFrame | None:
    """Decode a [PROGRESS] line, or None if it is not a well-formed frame."""
    if not line.startswith(PROGRESS_FRAME_PREFIX):
        return None
    parts = line[len(PROGRESS_FRAME_PREFIX) :].split("/")
    if len(parts) != 3 or parts[2] not in _PHASES:
        return None
    try:
        current, total = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    return ProgressFrame(current=current, total=total, phase=parts[2])  # type: ignore[arg-type]


def _split_error_marker(text: str) -> tuple[str, str | None]:
    """Separate a trailing error marker from report text."""
    if text.endswith("]"):
        idx = text.rfind(_ERROR_MARKER_OPENING)
        if idx != -1:
            return text[:idx], text[idx + len(_ERROR_MARKER_OPENING) : -1]
    return text, None


class ReportStreamParser:
    """Incremental client-side decoder for the framed report stream.

    Feed raw bytes as they arrive; progress frames and report text come back
    as events. Call finish() at end of stream for the final verdict.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._pending = ""
        self._body: list[str] = []
        self._result = ParsedReport()

    @property
    def started(self) -> bool:
        return self._result.started

    def feed(self, data: bytes) -> list[ParserEvent]:
        text = self._decoder.decode(data)
        return self._consume(text)

    def _consume(self, text: str) -> list[ParserEvent]:
        events: list[ParserEvent] = []
        if self._result.started:
            if text:
                self._body.append(text)
                events.append(ReportText(text))
            return events

        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            if line == REPORT_SENTINEL:
                self._result.started = True
                events.append(ReportStarted())
                rest, self._pending = self._pending, ""
                if rest:
                    self._body.append(rest)
                    events.append(ReportText(rest))
                return events
            frame = parse_progress_line(line)
            if frame is not None:
                self._result.progress.append(frame)
                events.append(frame)
        return events

    def finish(self) -> ParsedReport:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._consume(tail)

        result = self._result
        if result.started:
            result.report, result.error = _split_error_marker("".join(self._body))
        else:
            _, result.error = _split_error_marker("\n\n" + self._pending.strip("\n"))
        return result


def parse_report_stream(data: bytes | str) -> ParsedReport:
    """Decode a complete report stream in one call."""
    parser = ReportStreamParser()
    parser.feed(data.encode("utf-8") if isinstance(data, str) else data)
    return parser.finish()
