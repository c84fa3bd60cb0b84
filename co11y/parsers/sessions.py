"""Reduce a session transcript into aggregate session metrics."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Literal, Optional

from co11y.date_utils import parse_timestamp, utc_now
from co11y.models import (
    AssistantRecord,
    OtherRecord,
    QueueOperationRecord,
    Record,
    ToolUseBlock,
    UserRecord,
)

# A session is active while its newest record is younger than this.
ACTIVE_THRESHOLD = timedelta(minutes=5)


@dataclass
class SessionAnalysis:
    messageCount: int = 0
    toolCallCount: int = 0
    lastActivityTime: Optional[str] = None
    status: Literal["active", "idle"] = "idle"
    model: Optional[str] = None
    cwd: Optional[str] = None
    gitBranch: Optional[str] = None
    slug: Optional[str] = None


def count_tool_uses(record: AssistantRecord) -> int:
    content = record.message.content
    if not isinstance(content, list):
        return 0
    return sum(1 for block in content if isinstance(block, ToolUseBlock))


def is_recent(moment: datetime | None, now: datetime) -> bool:
    """True when ``moment`` lies strictly inside the activity window."""
    if moment is None:
        return False
    return now - moment < ACTIVE_THRESHOLD


def analyze_session(records: Iterable[Record], now: datetime | None = None) -> SessionAnalysis:
    """Analyze a session transcript in a single pass.

    Last activity is the newest parsed timestamp over every record, queue
    operations included, regardless of file order. Queue operations are
    excluded from message counts and metadata. ``cwd``, ``gitBranch``,
    ``slug`` and ``model`` keep the earliest value seen.
    """
    analysis = SessionAnalysis()
    last_activity: datetime | None = None

    for record in records:
        moment = parse_timestamp(record.timestamp)
        if moment is not None and (last_activity is None or moment > last_activity):
            last_activity = moment
            analysis.lastActivityTime = record.timestamp

        if isinstance(record, QueueOperationRecord):
            continue

        if isinstance(record, (UserRecord, AssistantRecord)):
            analysis.messageCount += 1
        elif not isinstance(record, OtherRecord):
            raise TypeError(f"Unhandled record type: {type(record).__name__}")

        if not analysis.cwd and record.cwd:
            analysis.cwd = record.cwd
        if not analysis.gitBranch and record.gitBranch:
            analysis.gitBranch = record.gitBranch
        if not analysis.slug and record.slug:
            analysis.slug = record.slug

        if isinstance(record, AssistantRecord):
            analysis.toolCallCount += count_tool_uses(record)
            if not analysis.model and record.message.model:
                analysis.model = record.message.model

    if is_recent(last_activity, now or utc_now()):
        analysis.status = "active"
    return analysis
