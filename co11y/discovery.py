"""Discover Claude projects, sessions and subagent transcripts on disk.

Every function here re-reads the filesystem on each call. Unreadable or
missing directories produce empty results rather than errors.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from co11y.parsers.jsonl import RECORD_FILE_SUFFIX, parse_jsonl_file

logger = logging.getLogger("co11y.discovery")

_SESSION_FILE_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.jsonl$",
    re.IGNORECASE,
)
_SUBAGENT_FILE_PATTERN = re.compile(r"^agent-([a-zA-Z0-9]+)\.jsonl$")


@dataclass(frozen=True)
class ClaudeProject:
    encodedPath: str
    decodedPath: str
    fullPath: Path

    @property
    def displayName(self) -> str:
        return self.decodedPath.rstrip("/").rsplit("/", 1)[-1] or self.decodedPath


@dataclass(frozen=True)
class SessionFile:
    id: str
    filePath: Path


@dataclass(frozen=True)
class SubagentFile:
    agentId: str
    sessionId: str
    filePath: Path


def decode_project_dir(name: str) -> str:
    """Decode a dash-encoded directory name back to a filesystem path.

    ``-Users-name-code`` becomes ``/Users/name/code``. Dashes that were part
    of the original path cannot be told apart from separators; the decode is
    lossy and kept that way for compatibility with existing layouts.
    """
    segments = [segment for segment in name.split("-") if segment != ""]
    return "/" + "/".join(segments)


def _list_dir(directory: Path) -> list[Path]:
    try:
        return list(Path(directory).iterdir())
    except OSError as exc:
        logger.warning(f"Unable to read directory {directory}: {exc}")
        return []


def scan_projects(projects_dir: Path) -> list[ClaudeProject]:
    """Return every project directory directly under ``projects_dir``."""
    projects: list[ClaudeProject] = []
    for entry in _list_dir(projects_dir):
        try:
            if not entry.is_dir():
                continue
        except OSError as exc:
            logger.warning(f"Skipping {entry.name}: {exc}")
            continue
        projects.append(
            ClaudeProject(
                encodedPath=entry.name,
                decodedPath=decode_project_dir(entry.name),
                fullPath=entry,
            )
        )
    return sorted(projects, key=lambda p: p.encodedPath)


def discover_sessions(project_dir: Path) -> list[SessionFile]:
    """Return main session transcripts (``<uuid>.jsonl``) in a project directory."""
    sessions = [
        SessionFile(id=entry.name[: -len(RECORD_FILE_SUFFIX)], filePath=entry)
        for entry in _list_dir(project_dir)
        if _SESSION_FILE_PATTERN.match(entry.name)
    ]
    return sorted(sessions, key=lambda s: s.id)


def _owning_session_id(path: Path) -> str:
    try:
        records = parse_jsonl_file(path)
    except (OSError, UnicodeError) as exc:
        logger.warning(f"Failed to parse subagent file {path.name}: {exc}")
        return ""
    for record in records:
        if record.sessionId is not None:
            return record.sessionId
    logger.warning(f"No sessionId found in subagent file {path.name}, adding with empty sessionId")
    return ""


def discover_subagents(project_dir: Path) -> list[SubagentFile]:
    """Return subagent transcripts (``agent-<id>.jsonl``) in a project directory.

    A subagent whose owning session cannot be determined is still listed,
    with an empty ``sessionId``.
    """
    subagents: list[SubagentFile] = []
    for entry in _list_dir(project_dir):
        match = _SUBAGENT_FILE_PATTERN.match(entry.name)
        if not match:
            continue
        subagents.append(
            SubagentFile(
                agentId=match.group(1),
                sessionId=_owning_session_id(entry),
                filePath=entry,
            )
        )
    return sorted(subagents, key=lambda s: s.agentId)


def find_project(projects_dir: Path, project_id: str) -> ClaudeProject | None:
    return next((p for p in scan_projects(projects_dir) if p.encodedPath == project_id), None)


def find_session(projects_dir: Path, session_id: str) -> tuple[ClaudeProject, SessionFile] | None:
    for project in scan_projects(projects_dir):
        for session_file in discover_sessions(project.fullPath):
            if session_file.id == session_id:
                return project, session_file
    return None


def find_subagent(projects_dir: Path, agent_id: str) -> tuple[ClaudeProject, SubagentFile] | None:
    for project in scan_projects(projects_dir):
        for subagent_file in discover_subagents(project.fullPath):
            if subagent_file.agentId == agent_id:
                return project, subagent_file
    return None
