"""API routers for sessions, transcripts and subagents."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException, Query, Request

from co11y import config
from co11y.discovery import ClaudeProject, SessionFile, discover_subagents, find_session, find_subagent
from co11y.errors import NotFoundError
from co11y.models import (
    ProjectsResponse,
    SessionDetail,
    SubagentsResponse,
    TranscriptResponse,
    record_to_dict,
)
from co11y.parsers.jsonl import parse_jsonl_file
from co11y.services.aggregator import analyze_subagents, build_session, build_snapshot, to_projects_response

logger = logging.getLogger("co11y.api")


def projects_dir_for(request: Request) -> Path:
    return Path(getattr(request.app.state, "projects_dir", None) or config.PROJECTS_DIR)


def _locate_session(projects_dir: Path, session_id: str) -> tuple[ClaudeProject, SessionFile]:
    located = find_session(projects_dir, session_id)
    if located is None:
        raise NotFoundError("session", session_id)
    return located


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=exc.detail)


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("", response_model=ProjectsResponse, response_model_exclude_none=True)
def list_sessions(
    request: Request,
    active: bool = Query(False, description="Only include active sessions"),
):
    """List every project with its sessions, busiest project first."""
    snapshot = build_snapshot(projects_dir_for(request), include_subagents=False)
    return to_projects_response(snapshot, active_only=active)


@sessions_router.get("/{session_id}", response_model=SessionDetail, response_model_exclude_none=True)
def get_session_detail(request: Request, session_id: str):
    """Session metrics plus the full parsed transcript."""
    try:
        project, session_file = _locate_session(projects_dir_for(request), session_id)
        session = build_session(project, session_file, discover_subagents(project.fullPath))
        records = parse_jsonl_file(session_file.filePath)
    except NotFoundError as e:
        raise _not_found(e)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    return SessionDetail(
        **session.model_dump(exclude={"subagents"}),
        transcript=[record_to_dict(r) for r in records],
    )


@sessions_router.get("/{session_id}/transcript", response_model=TranscriptResponse)
def get_session_transcript(
    request: Request,
    session_id: str,
    limit: int = Query(50, ge=0),
    offset: int = Query(0, ge=0),
):
    try:
        _, session_file = _locate_session(projects_dir_for(request), session_id)
        records = parse_jsonl_file(session_file.filePath)
    except NotFoundError as e:
        raise _not_found(e)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    return TranscriptResponse(
        sessionId=session_id,
        transcript=[record_to_dict(r) for r in records[offset: offset + limit]],
        total=len(records),
        limit=limit,
        offset=offset,
    )


@sessions_router.get("/{session_id}/subagents", response_model=SubagentsResponse, response_model_exclude_none=True)
def get_session_subagents(request: Request, session_id: str):
    """Analyze every subagent spawned by a session."""
    try:
        project, _ = _locate_session(projects_dir_for(request), session_id)
    except NotFoundError as e:
        raise _not_found(e)

    subagents = analyze_subagents(discover_subagents(project.fullPath), session_id)
    return SubagentsResponse(sessionId=session_id, subagents=subagents)


# ── Subagents router ────────────────────────────────────────────────

subagents_router = APIRouter(prefix="/api/subagents", tags=["subagents"])


@subagents_router.get("/{agent_id}/transcript", response_model=TranscriptResponse)
def get_subagent_transcript(
    request: Request,
    agent_id: str,
    limit: int = Query(50, ge=0),
    offset: int = Query(0, ge=0),
):
    located = find_subagent(projects_dir_for(request), agent_id)
    if located is None:
        raise _not_found(NotFoundError("subagent", agent_id))
    _, subagent_file = located

    try:
        records = parse_jsonl_file(subagent_file.filePath)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Subagent not found")

    return TranscriptResponse(
        sessionId=subagent_file.sessionId,
        transcript=[record_to_dict(r) for r in records[offset: offset + limit]],
        total=len(records),
        limit=limit,
        offset=offset,
    )
