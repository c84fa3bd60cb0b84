"""Parse append-only JSONL transcript files into typed records."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from co11y.models import Record, record_adapter
from co11y.observability import record_parser_failure

logger = logging.getLogger("co11y.parser")

RECORD_FILE_SUFFIX = ".jsonl"


def parse_jsonl_text(text: str, source: str = "<memory>") -> list[Record]:
    """Decode newline-delimited JSON records, skipping malformed lines.

    Blank lines are ignored silently. A line that is not valid JSON, or whose
    JSON does not fit the record union, is logged and skipped; parsing always
    continues with the next line.
    """
    records: list[Record] = []
    for line_no, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
            records.append(record_adapter.validate_python(payload))
        except json.JSONDecodeError as exc:
            logger.warning("Skipping malformed line %d in %s: %s", line_no, source, exc.msg)
            record_parser_failure("jsonl")
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid record on line %d in %s: %d validation error(s)",
                line_no,
                source,
                exc.error_count(),
            )
            record_parser_failure("jsonl")
    return records


def parse_jsonl_file(path: Path) -> list[Record]:
    """Parse a transcript file.

    Raises ``FileNotFoundError`` when the file does not exist so callers can
    tell a missing session apart from an empty one.
    """
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_jsonl_text(content, source=str(path))
