import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from co11y.date_utils import format_iso
from co11y.services import aggregator
from co11y.services.aggregator import build_project, build_snapshot, to_projects_response
from co11y.discovery import scan_projects

SESSION_ID = "11111111-2222-4333-8444-555555555555"
OTHER_SESSION_ID = "99999999-2222-4333-8444-555555555555"


class AggregatorTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.now = datetime.now(timezone.utc)

    def _ts(self, **delta) -> str:
        return format_iso(self.now - timedelta(**delta))

    def _write(self, path: Path, lines: list[dict]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(json.dumps(line) for line in lines) + "\n", encoding="utf-8")
        return path

    def _seed_project(self) -> Path:
        project = self.root / "-Users-dev-code-app"
        self._write(
            project / f"{SESSION_ID}.jsonl",
            [
                {"type": "user", "sessionId": SESSION_ID, "timestamp": self._ts(minutes=3), "cwd": "/Users/dev/code/app", "message": {"content": "hello"}},
                {
                    "type": "assistant",
                    "sessionId": SESSION_ID,
                    "timestamp": self._ts(minutes=2),
                    "message": {"model": "claude-opus", "content": [{"type": "tool_use", "id": "t1", "name": "Task", "input": {}}]},
                },
                {"type": "user", "sessionId": SESSION_ID, "timestamp": self._ts(minutes=1), "message": {"content": [{"type": "tool_result", "tool_use_id": "t1"}]}},
            ],
        )
        self._write(
            project / "agent-abc123.jsonl",
            [
                {"type": "user", "sessionId": SESSION_ID, "timestamp": self._ts(minutes=2), "message": {"content": "Task: explore"}},
                {"type": "assistant", "sessionId": SESSION_ID, "timestamp": self._ts(minutes=1), "message": {"content": []}},
            ],
        )
        return project

    def test_snapshot_end_to_end(self) -> None:
        self._seed_project()

        snapshot = build_snapshot(self.root)

        self.assertEqual(len(snapshot.projects), 1)
        project = snapshot.projects[0]
        self.assertEqual(project.id, "-Users-dev-code-app")
        self.assertEqual(project.name, "app")
        self.assertEqual(project.fullPath, "/Users/dev/code/app")
        self.assertEqual(project.sessionCount, 1)
        self.assertEqual(project.activeSessionCount, 1)
        self.assertEqual(project.totalSubagents, 1)

        session = snapshot.sessions[0]
        self.assertEqual(session.id, SESSION_ID)
        self.assertEqual(session.status, "active")
        self.assertEqual(session.messageCount, 3)
        self.assertEqual(session.toolCallCount, 1)
        self.assertEqual(session.subagentCount, 1)
        self.assertEqual(session.model, "claude-opus")
        self.assertEqual(session.lastActivity, self._ts(minutes=1))
        self.assertEqual(len(session.subagents), 1)
        self.assertEqual(session.subagents[0].agentId, "abc123")
        self.assertEqual(session.subagents[0].messageCount, 2)
        self.assertEqual(session.subagents[0].task, "explore")

    def test_rest_listing_omits_subagent_details(self) -> None:
        self._seed_project()
        snapshot = build_snapshot(self.root, include_subagents=False)
        self.assertIsNone(snapshot.sessions[0].subagents)
        self.assertEqual(snapshot.sessions[0].subagentCount, 1)

    def test_empty_projects_are_dropped_and_busiest_first(self) -> None:
        self._seed_project()
        (self.root / "-empty").mkdir()
        busy = self.root / "-busy"
        for session_id in (OTHER_SESSION_ID, "88888888-2222-4333-8444-555555555555"):
            self._write(busy / f"{session_id}.jsonl", [{"type": "user", "timestamp": self._ts(hours=2), "message": {"content": "x"}}])

        snapshot = build_snapshot(self.root)

        self.assertEqual([p.id for p in snapshot.projects], ["-busy", "-Users-dev-code-app"])

    def test_sessions_sorted_by_last_activity(self) -> None:
        project_dir = self.root / "-p"
        self._write(project_dir / f"{SESSION_ID}.jsonl", [{"type": "user", "timestamp": self._ts(hours=3), "message": {"content": "old"}}])
        self._write(project_dir / f"{OTHER_SESSION_ID}.jsonl", [{"type": "user", "timestamp": self._ts(minutes=30), "message": {"content": "new"}}])

        project = build_project(scan_projects(self.root)[0])

        self.assertEqual([s.id for s in project.sessions], [OTHER_SESSION_ID, SESSION_ID])
        self.assertEqual(project.lastActivity, self._ts(minutes=30))
        self.assertEqual(project.activeSessionCount, 0)

    def test_last_activity_falls_back_to_file_mtime(self) -> None:
        path = self._write(self.root / "-p" / f"{SESSION_ID}.jsonl", [{"type": "summary", "summary": "no timestamps"}])
        mtime = datetime(2025, 6, 1, 8, 30, tzinfo=timezone.utc).timestamp()
        os.utime(path, (mtime, mtime))

        project = build_project(scan_projects(self.root)[0])

        self.assertEqual(project.sessions[0].lastActivity, "2025-06-01T08:30:00.000Z")
        self.assertEqual(project.sessions[0].status, "idle")

    def test_failed_session_does_not_blank_the_project(self) -> None:
        project_dir = self.root / "-p"
        self._write(project_dir / f"{SESSION_ID}.jsonl", [{"type": "user", "timestamp": self._ts(hours=1), "message": {"content": "ok"}}])
        self._write(project_dir / f"{OTHER_SESSION_ID}.jsonl", [{"type": "user", "message": {"content": "boom"}}])

        original = aggregator.analyze_session

        def flaky(records, now=None):
            if any(getattr(r.message, "content", None) == "boom" for r in records):
                raise RuntimeError("analysis failed")
            return original(records, now=now)

        with patch.object(aggregator, "analyze_session", side_effect=flaky):
            with self.assertLogs("co11y.aggregator", level="WARNING"):
                project = build_project(scan_projects(self.root)[0])

        self.assertEqual([s.id for s in project.sessions], [SESSION_ID])

    def test_active_filter(self) -> None:
        self._seed_project()
        idle = self.root / "-idle"
        self._write(idle / f"{OTHER_SESSION_ID}.jsonl", [{"type": "user", "timestamp": self._ts(hours=1), "message": {"content": "x"}}])

        snapshot = build_snapshot(self.root, include_subagents=False)
        everything = to_projects_response(snapshot)
        active = to_projects_response(snapshot, active_only=True)

        self.assertEqual(everything.totalProjects, 2)
        self.assertEqual(everything.totalSessions, 2)
        self.assertEqual(active.totalProjects, 1)
        self.assertEqual(active.totalSessions, 1)
        self.assertEqual(active.activeSessionCount, 1)
        self.assertEqual(active.projects[0].id, "-Users-dev-code-app")


if __name__ == "__main__":
    unittest.main()
