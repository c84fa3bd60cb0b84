"""Server-sent event frame formatting."""
from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import BaseModel

from co11y.date_utils import now_iso

HEARTBEAT = "heartbeat"
HOOK = "hook"
SESSIONS = "sessions"
PROJECTS = "projects"


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_none=True)
    if isinstance(data, (list, tuple)):
        return [_jsonable(item) for item in data]
    return data


def format_frame(event: str, data: Any) -> str:
    """Format one frame as ``event: <type>\\ndata: <json>\\n\\n``."""
    payload = json.dumps(_jsonable(data), separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


def heartbeat_frame(timestamp: str | None = None) -> str:
    return format_frame(HEARTBEAT, {"timestamp": timestamp or now_iso()})


def hook_frame(event: dict[str, Any]) -> str:
    return format_frame(HOOK, event)


def snapshot_frames(projects: Iterable[BaseModel]) -> list[str]:
    """Frames for a full-replace snapshot: flat sessions first, then projects."""
    projects = list(projects)
    sessions = [session for project in projects for session in getattr(project, "sessions", [])]
    return [format_frame(SESSIONS, sessions), format_frame(PROJECTS, projects)]
