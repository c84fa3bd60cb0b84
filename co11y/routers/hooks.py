"""Hook event ingestion and hook configuration endpoints."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import ValidationError

from co11y import config
from co11y.errors import HookValidationError
from co11y.models import hook_event_adapter
from co11y.routers.events import get_hub

logger = logging.getLogger("co11y.hooks")

hooks_router = APIRouter(prefix="/api/hooks", tags=["hooks"])

HOOK_TYPES = ("SessionStart", "SessionEnd", "PreToolUse", "PostToolUse")

# jq projections of the hook's stdin payload, per hook type.
_HOOK_FIELDS: dict[str, tuple[str, ...]] = {
    "SessionStart": ("slug: .slug", "gitBranch: .git_branch"),
    "SessionEnd": (
        "gitBranch: .git_branch",
        "messageCount: .message_count",
        "duration: .duration",
    ),
    "PreToolUse": (
        "gitBranch: .git_branch",
        "toolName: .tool_name",
        "toolInput: .tool_input",
        "messageUuid: .message_uuid",
    ),
    "PostToolUse": (
        "gitBranch: .git_branch",
        "toolName: .tool_name",
        "toolOutput: .tool_output",
        "success: .success",
        "duration: .duration",
        "messageUuid: .message_uuid",
    ),
}


def _format_reason(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def validate_hook_event(payload: Any) -> dict[str, Any]:
    """Validate a hook payload against its variant and return it as a dict.

    Fields the sender set, explicit nulls included, are kept as sent.
    Raises ``HookValidationError`` with a readable reason; nothing is stored
    for an invalid payload.
    """
    if not isinstance(payload, dict):
        raise HookValidationError("payload must be a JSON object")
    try:
        event = hook_event_adapter.validate_python(payload)
    except ValidationError as exc:
        raise HookValidationError(_format_reason(exc)) from exc
    return event.model_dump(mode="json", exclude_unset=True)


@hooks_router.post("/event")
async def ingest_hook_event(request: Request):
    """Receive one lifecycle hook event and broadcast it to connected clients."""
    hub = get_hub(request)
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        event = validate_hook_event(payload)
    except HookValidationError as e:
        logger.info(f"Rejected hook event: {e.reason}")
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid hook event structure", "reason": e.reason},
        )

    delivered = hub.ingest(event)
    logger.debug("Hook %s for session %s sent to %d clients", event["type"], event["sessionId"], delivered)
    return {"success": True}


def build_hook_command(hook_type: str, webhook_url: str) -> str:
    fields = [
        f'type: "{hook_type}"',
        "sessionId: .session_id",
        "timestamp: (now | todate)",
        "cwd: .cwd",
        *_HOOK_FIELDS[hook_type],
    ]
    projection = ",\n  ".join(fields)
    return (
        f"cat | jq -c '{{\n  {projection}\n}}' "
        f'| curl -X POST -H "Content-Type: application/json" -d @- {webhook_url} -s -o /dev/null'
    )


def build_hooks_config(webhook_url: str) -> dict[str, Any]:
    return {
        "hooks": {
            hook_type: [
                {
                    "matcher": ".*",
                    "hooks": [{"type": "command", "command": build_hook_command(hook_type, webhook_url)}],
                }
            ]
            for hook_type in HOOK_TYPES
        }
    }


@hooks_router.get("/config")
def get_hooks_config(url: str | None = Query(None, description="Webhook URL the hooks should post to")):
    """Generate a hooks configuration that forwards events to this server."""
    return build_hooks_config(url or config.HOOK_EVENT_URL)
