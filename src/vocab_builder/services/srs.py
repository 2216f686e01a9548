"""Review scheduling: how a rating moves a word's interval, ease and status."""
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta

from vocab_builder.errors import PreconditionError
from vocab_builder.models.word_models import MIN_EASE, Rating, WordProgress, WordStatus

logger = logging.getLogger(__name__)

RELEARN_DELAY = timedelta(minutes=10)
COMPLETED_MIN_REPS = 5
COMPLETED_MIN_INTERVAL_DAYS = 21


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def add_days(now: datetime, days: int) -> datetime:
    """Shift a timestamp by a whole number of days."""
    return now + timedelta(days=days)


def apply_rating(word: WordProgress, rating: Rating, now: datetime) -> WordProgress:
    """Return the word as it looks after being reviewed with ``rating`` at ``now``.

    The input word is left untouched.
    """
    if not isinstance(rating, Rating):
        raise PreconditionError(f"Unknown rating: {rating!r}")

    updated = replace(word, tags=list(word.tags))
    updated.last_reviewed_at = now

    if rating is Rating.AGAIN:
        updated.reps = 0
        updated.lapses += 1
        updated.ease = max(MIN_EASE, updated.ease - 0.2)
        updated.interval_days = 0
        updated.due_at = now + RELEARN_DELAY
    elif rating is Rating.HARD:
        updated.ease = max(MIN_EASE, updated.ease - 0.05)
        updated.interval_days = max(1, round_half_up(updated.interval_days * 1.2))
        updated.due_at = add_days(now, updated.interval_days)
        updated.reps += 1
    elif rating is Rating.GOOD:
        if updated.reps == 0:
            updated.interval_days = 1
        elif updated.reps == 1:
            updated.interval_days = 3
        else:
            updated.interval_days = round_half_up(updated.interval_days * updated.ease)
        updated.due_at = add_days(now, updated.interval_days)
        updated.reps += 1
    elif rating is Rating.EASY:
        updated.ease = updated.ease + 0.1
        updated.interval_days = max(4, round_half_up(updated.interval_days * updated.ease * 1.3))
        updated.due_at = add_days(now, updated.interval_days)
        updated.reps += 1
    else:
        raise PreconditionError(f"Unhandled rating: {rating!r}")

    updated.updated_at = now
    updated.status = resolve_status(word.status, updated, rating)
    logger.debug(
        f"Rated word {word.id} {rating.value}: interval {word.interval_days} -> {updated.interval_days}, "
        f"ease {word.ease:.2f} -> {updated.ease:.2f}, status {word.status.value} -> {updated.status.value}"
    )
    return updated


def resolve_status(previous: WordStatus, updated: WordProgress, rating: Rating) -> WordStatus:
    """Status after a review, from the old status and the new numbers."""
    if previous is WordStatus.COMPLETED and rating is Rating.AGAIN:
        return WordStatus.IN_PROGRESS
    if updated.reps >= COMPLETED_MIN_REPS and updated.interval_days >= COMPLETED_MIN_INTERVAL_DAYS:
        return WordStatus.COMPLETED
    if previous is WordStatus.NEW:
        return WordStatus.IN_PROGRESS
    return previous


def is_due(word: WordProgress, now: datetime) -> bool:
    """Whether the word should be reviewed at ``now``; never-scheduled words always are."""
    if word.due_at is None:
        return True
    return word.due_at <= now
