"""Collection-wide statistics."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional

from vocab_builder.models.word_models import WordProgress, WordStatus, utc_now

HARDEST_LIMIT = 8


@dataclass
class OverallStats:
    """Snapshot of the learner's collection."""
    by_status: Dict[WordStatus, int] = field(default_factory=lambda: {status: 0 for status in WordStatus})
    due_today: int = 0
    due_week: int = 0
    hardest: List[WordProgress] = field(default_factory=list)


def build_overall_stats(
    words: Iterable[WordProgress],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> OverallStats:
    """Count words by status and by how soon they are due.

    Day boundaries are midnights in ``tz`` (the local zone by default).
    Words never scheduled are not counted as due here.
    """
    words = list(words)
    local_now = (now or utc_now()).astimezone(tz)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_today = midnight + timedelta(days=1)
    end_of_week = midnight + timedelta(days=7)

    stats = OverallStats()
    for word in words:
        stats.by_status[word.status] += 1
        if word.due_at is not None:
            if word.due_at <= end_of_today:
                stats.due_today += 1
            if word.due_at <= end_of_week:
                stats.due_week += 1

    stats.hardest = sorted(words, key=lambda w: w.difficulty, reverse=True)[:HARDEST_LIMIT]
    return stats
