"""Usage statistics derived from Claude's stats cache file."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Request

from co11y import config
from co11y.date_utils import utc_now
from co11y.models import Stats, StatsCache, StatsResponse

logger = logging.getLogger("co11y.stats")

stats_router = APIRouter(prefix="/api/stats", tags=["stats"])


def load_stats_cache(path: Path) -> StatsCache | None:
    try:
        return StatsCache.model_validate_json(path.read_bytes())
    except (OSError, ValueError) as exc:
        logger.warning(f"Could not read {path.name}: {exc}")
        return None


def build_stats(cache: StatsCache | None, today: str | None = None) -> Stats:
    """Summarize the cache; no cache yields empty stats."""
    if cache is None:
        return Stats()

    today = today or utc_now().date().isoformat()
    today_activity = next((a for a in cache.dailyActivity if a.date == today), None)
    total_tokens = sum(
        tokens for day in cache.dailyModelTokens for tokens in day.tokensByModel.values()
    )
    return Stats(
        totalSessions=cache.totalSessions,
        totalMessages=cache.totalMessages,
        messagesToday=today_activity.messageCount if today_activity else 0,
        sessionsToday=today_activity.sessionCount if today_activity else 0,
        toolCallsToday=today_activity.toolCallCount if today_activity else 0,
        totalTokens=total_tokens,
        modelUsage=cache.modelUsage,
        dailyActivity=cache.dailyActivity,
        firstSessionDate=cache.firstSessionDate,
        longestSession=cache.longestSession,
    )


@stats_router.get("", response_model=StatsResponse)
def get_stats(request: Request):
    stats_file = Path(getattr(request.app.state, "stats_file", None) or config.STATS_CACHE_FILE)
    return StatsResponse(stats=build_stats(load_stats_cache(stats_file)))
