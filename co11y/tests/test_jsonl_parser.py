import json
import tempfile
import unittest
from pathlib import Path

from co11y.models import AssistantRecord, OtherRecord, QueueOperationRecord, UserRecord
from co11y.parsers.jsonl import parse_jsonl_file, parse_jsonl_text


class JsonlParserTests(unittest.TestCase):
    def _write(self, text: str, name: str = "session.jsonl") -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_malformed_lines_are_skipped(self) -> None:
        text = "\n".join(
            [
                json.dumps({"type": "user", "timestamp": "2026-01-01T00:00:00Z", "message": {"content": "hi"}}),
                "{not json",
                json.dumps({"type": "assistant", "timestamp": "2026-01-01T00:00:01Z", "message": {"content": []}}),
            ]
        )
        with self.assertLogs("co11y.parser", level="WARNING") as logs:
            records = parse_jsonl_text(text)

        self.assertEqual(len(records), 2)
        self.assertIsInstance(records[0], UserRecord)
        self.assertIsInstance(records[1], AssistantRecord)
        self.assertIn("line 2", logs.output[0])

    def test_blank_lines_and_trailing_newline_are_ignored(self) -> None:
        text = "\n" + json.dumps({"type": "user", "message": {"content": "x"}}) + "\n\n   \n"
        self.assertEqual(len(parse_jsonl_text(text)), 1)

    def test_non_object_json_is_skipped(self) -> None:
        with self.assertLogs("co11y.parser", level="WARNING"):
            records = parse_jsonl_text("[1, 2]\n42")
        self.assertEqual(records, [])

    def test_unknown_and_queue_records_are_tagged(self) -> None:
        text = "\n".join(
            [
                json.dumps({"type": "queue-operation", "operation": "enqueue", "timestamp": "2026-01-01T00:00:00Z"}),
                json.dumps({"type": "summary", "summary": "did things", "leafUuid": "u1"}),
                json.dumps({"cwd": "/tmp"}),
            ]
        )
        records = parse_jsonl_text(text)

        self.assertIsInstance(records[0], QueueOperationRecord)
        self.assertEqual(records[0].operation, "enqueue")
        self.assertIsInstance(records[1], OtherRecord)
        self.assertEqual(records[1].type, "summary")
        self.assertIsInstance(records[2], OtherRecord)
        self.assertEqual(records[2].cwd, "/tmp")

    def test_content_blocks_are_discriminated(self) -> None:
        line = json.dumps(
            {
                "type": "assistant",
                "message": {
                    "content": [
                        {"type": "text", "text": "ok"},
                        {"type": "tool_use", "id": "t1", "name": "Read", "input": {}},
                        {"type": "thinking", "thinking": "hmm"},
                    ]
                },
            }
        )
        record = parse_jsonl_text(line)[0]
        kinds = [type(block).__name__ for block in record.message.content]
        self.assertEqual(kinds, ["TextBlock", "ToolUseBlock", "OtherBlock"])

    def test_reparsing_the_same_file_is_stable(self) -> None:
        path = self._write(
            "\n".join(
                json.dumps({"type": "user", "timestamp": f"2026-01-01T00:00:0{i}Z", "message": {"content": str(i)}})
                for i in range(3)
            )
        )
        first = parse_jsonl_file(path)
        second = parse_jsonl_file(path)
        self.assertEqual([r.model_dump() for r in first], [r.model_dump() for r in second])

    def test_missing_file_raises(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        with self.assertRaises(FileNotFoundError):
            parse_jsonl_file(Path(tmpdir.name) / "missing.jsonl")


if __name__ == "__main__":
    unittest.main()
