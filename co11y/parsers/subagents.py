"""Reduce a subagent transcript into a Subagent status entry."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional, Sequence

from co11y.date_utils import elapsed_ms, now_iso, parse_timestamp, utc_now
from co11y.models import (
    AssistantRecord,
    Record,
    Subagent,
    SubagentStatus,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserRecord,
)
from co11y.parsers.sessions import count_tool_uses, is_recent

_TASK_LABEL_PATTERN = re.compile(r"Task:\s*(.+)", re.IGNORECASE)
UNKNOWN_TASK = "Unknown task"


def _strip_task_label(text: str) -> str:
    match = _TASK_LABEL_PATTERN.search(text)
    return match.group(1).strip() if match else text


def extract_task(records: Sequence[Record]) -> str:
    """Return the task description from the first user message."""
    first_user = next((r for r in records if isinstance(r, UserRecord)), None)
    if first_user is None:
        return UNKNOWN_TASK

    content = first_user.message.content
    if isinstance(content, str):
        return _strip_task_label(content)
    for block in content:
        if isinstance(block, TextBlock):
            return _strip_task_label(block.text)
    return UNKNOWN_TASK


def _has_error_result(records: Sequence[Record]) -> bool:
    for record in records:
        if not isinstance(record, UserRecord):
            continue
        content = record.message.content
        if isinstance(content, list) and any(
            isinstance(block, ToolResultBlock) and block.is_error is True for block in content
        ):
            return True
    return False


def determine_status(records: Sequence[Record], now: datetime) -> SubagentStatus:
    # Errors win over recency.
    if not records:
        return "completed"
    if _has_error_result(records):
        return "error"
    if is_recent(parse_timestamp(records[-1].timestamp), now):
        return "running"
    return "completed"


def current_tool(records: Sequence[Record]) -> Optional[str]:
    """Name of the most recent tool_use block, scanning backwards."""
    for record in reversed(records):
        if not isinstance(record, AssistantRecord):
            continue
        content = record.message.content
        if not isinstance(content, list):
            continue
        for block in reversed(content):
            if isinstance(block, ToolUseBlock) and block.name:
                return block.name
    return None


def analyze_subagent(
    agent_id: str,
    session_id: str,
    records: Sequence[Record],
    now: datetime | None = None,
) -> Subagent:
    now = now or utc_now()
    status = determine_status(records, now)

    message_count = sum(1 for r in records if isinstance(r, (UserRecord, AssistantRecord)))
    tool_call_count = sum(count_tool_uses(r) for r in records if isinstance(r, AssistantRecord))

    start_time = (records[0].timestamp or "") if records else now_iso()
    end_time: Optional[str] = None
    duration: Optional[int] = None
    if status != "running" and records:
        end_time = records[-1].timestamp
        start_dt = parse_timestamp(start_time)
        end_dt = parse_timestamp(end_time)
        if start_dt is not None and end_dt is not None:
            duration = elapsed_ms(start_dt, end_dt)

    return Subagent(
        agentId=agent_id,
        sessionId=session_id,
        task=extract_task(records),
        status=status,
        startTime=start_time,
        endTime=end_time,
        duration=duration,
        messageCount=message_count,
        toolCallCount=tool_call_count,
        currentTool=current_tool(records) if status == "running" else None,
    )
