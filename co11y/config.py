"""co11y Backend Configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Claude data locations
CLAUDE_DIR = Path(os.getenv("CO11Y_CLAUDE_DIR", str(Path.home() / ".claude"))).expanduser()
PROJECTS_DIR = Path(os.getenv("CO11Y_PROJECTS_DIR", str(CLAUDE_DIR / "projects"))).expanduser()
STATS_CACHE_FILE = CLAUDE_DIR / "stats-cache.json"

# Live updates
EVENT_BUFFER_SIZE = _env_int("CO11Y_EVENT_BUFFER_SIZE", 100)
SESSION_REFRESH_SECONDS = _env_float("CO11Y_SESSION_REFRESH_SECONDS", 10.0)
HEARTBEAT_SECONDS = _env_float("CO11Y_HEARTBEAT_SECONDS", 30.0)
WATCH_DEBOUNCE_MS = _env_int("CO11Y_WATCH_DEBOUNCE_MS", 500)
CLIENT_QUEUE_SIZE = _env_int("CO11Y_CLIENT_QUEUE_SIZE", 256)
WATCHER_ENABLED = _env_bool("CO11Y_WATCHER_ENABLED", True)

# Observability
OTEL_ENABLED = _env_bool("CO11Y_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CO11Y_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CO11Y_OTEL_SERVICE_NAME", "co11y-backend")
PROM_PORT = _env_int("CO11Y_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("CO11Y_HOST", "127.0.0.1")
PORT = _env_int("CO11Y_PORT", 3001)

# Default ingest URL baked into generated hook commands
HOOK_EVENT_URL = os.getenv("CO11Y_HOOK_EVENT_URL", f"http://localhost:{PORT}/api/hooks/event")

# CORS
FRONTEND_ORIGIN = os.getenv("CO11Y_FRONTEND_ORIGIN", "http://localhost:5173")
