"""Build Project/Session views from discovery + analyzers.

Shared by the REST routers and the live broadcast hub. Every function is a
pure read -> compute pass over the filesystem; nothing is cached between calls.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from co11y.date_utils import file_mtime_iso, timestamp_epoch, utc_now
from co11y.discovery import (
    ClaudeProject,
    SessionFile,
    SubagentFile,
    discover_sessions,
    discover_subagents,
    scan_projects,
)
from co11y.models import Project, ProjectsResponse, Session, Subagent
from co11y.observability import record_parser_failure
from co11y.parsers.jsonl import parse_jsonl_file
from co11y.parsers.sessions import analyze_session
from co11y.parsers.subagents import analyze_subagent

logger = logging.getLogger("co11y.aggregator")


@dataclass
class Snapshot:
    """A full recomputed view of every project, pushed wholesale to clients."""

    generatedAt: datetime
    projects: list[Project] = field(default_factory=list)

    @property
    def sessions(self) -> list[Session]:
        return [session for project in self.projects for session in project.sessions]


def analyze_subagents(
    subagent_files: list[SubagentFile],
    session_id: str,
    now: datetime | None = None,
) -> list[Subagent]:
    """Analyze every subagent file owned by ``session_id``; unreadable ones are skipped."""
    subagents: list[Subagent] = []
    for subagent_file in subagent_files:
        if subagent_file.sessionId != session_id:
            continue
        try:
            records = parse_jsonl_file(subagent_file.filePath)
        except (OSError, UnicodeError) as exc:
            logger.warning(f"Failed to analyze subagent {subagent_file.agentId}: {exc}")
            record_parser_failure("subagent")
            continue
        subagents.append(analyze_subagent(subagent_file.agentId, session_id, records, now=now))
    return subagents


def build_session(
    project: ClaudeProject,
    session_file: SessionFile,
    subagent_files: list[SubagentFile],
    *,
    now: datetime | None = None,
    include_subagents: bool = False,
) -> Session:
    """Parse and analyze one session file. Raises when the file cannot be read."""
    records = parse_jsonl_file(session_file.filePath)
    analysis = analyze_session(records, now=now)
    owned = [s for s in subagent_files if s.sessionId == session_file.id]

    subagents: Optional[list[Subagent]] = None
    if include_subagents:
        subagents = analyze_subagents(owned, session_file.id, now=now)

    return Session(
        id=session_file.id,
        project=project.decodedPath,
        projectPath=project.decodedPath,
        status=analysis.status,
        lastActivity=analysis.lastActivityTime or file_mtime_iso(session_file.filePath),
        messageCount=analysis.messageCount,
        toolCallCount=analysis.toolCallCount,
        subagentCount=len(owned),
        model=analysis.model,
        cwd=analysis.cwd,
        gitBranch=analysis.gitBranch,
        slug=analysis.slug,
        subagents=subagents,
    )


def build_project(
    project: ClaudeProject,
    *,
    now: datetime | None = None,
    include_subagents: bool = False,
) -> Project:
    """Aggregate every session of one project.

    A session that fails to parse is logged and left out; it never blanks the
    rest of the project.
    """
    summary = Project(
        id=project.encodedPath,
        name=project.displayName,
        fullPath=project.decodedPath,
    )
    subagent_files = discover_subagents(project.fullPath)

    for session_file in discover_sessions(project.fullPath):
        try:
            session = build_session(
                project,
                session_file,
                subagent_files,
                now=now,
                include_subagents=include_subagents,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to process session {session_file.id}: {e}")
            record_parser_failure("session")
            continue

        summary.sessions.append(session)
        summary.sessionCount += 1
        if session.status == "active":
            summary.activeSessionCount += 1
        summary.totalMessages += session.messageCount
        summary.totalToolCalls += session.toolCallCount
        summary.totalSubagents += session.subagentCount
        if not summary.lastActivity or timestamp_epoch(session.lastActivity) > timestamp_epoch(summary.lastActivity):
            summary.lastActivity = session.lastActivity

    summary.sessions.sort(key=lambda s: timestamp_epoch(s.lastActivity), reverse=True)
    return summary


def build_snapshot(projects_dir: Path, *, include_subagents: bool = True) -> Snapshot:
    """Recompute the full view over every project under ``projects_dir``.

    Projects without sessions are left out; the rest are ordered by session
    count, busiest first.
    """
    now = utc_now()
    projects = [
        build_project(project, now=now, include_subagents=include_subagents)
        for project in scan_projects(projects_dir)
    ]
    projects = [p for p in projects if p.sessions]
    projects.sort(key=lambda p: p.sessionCount, reverse=True)
    return Snapshot(generatedAt=now, projects=projects)


def to_projects_response(snapshot: Snapshot, *, active_only: bool = False) -> ProjectsResponse:
    projects = snapshot.projects
    if active_only:
        filtered: list[Project] = []
        for project in projects:
            active_sessions = [s for s in project.sessions if s.status == "active"]
            if not active_sessions:
                continue
            filtered.append(
                project.model_copy(
                    update={"sessions": active_sessions, "sessionCount": len(active_sessions)}
                )
            )
        projects = filtered

    return ProjectsResponse(
        projects=projects,
        totalProjects=len(projects),
        totalSessions=sum(p.sessionCount for p in projects),
        activeSessionCount=sum(p.activeSessionCount for p in projects),
    )
