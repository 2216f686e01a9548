"""Selection and ordering of the words reviewed in one session."""
import logging
import random
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from vocab_builder.config import settings
from vocab_builder.models.word_models import (
    Origin,
    SessionConfig,
    SessionItem,
    SessionMode,
    TrainingMode,
    WordProgress,
    WordStatus,
)
from vocab_builder.services.srs import is_due, round_half_up

logger = logging.getLogger(__name__)

_MODE_BY_SESSION_MODE = {
    SessionMode.FLASHCARDS: TrainingMode.FLASHCARDS,
    SessionMode.FILL_BLANK: TrainingMode.FILL_BLANK,
    SessionMode.SPELLING: TrainingMode.SPELLING,
    SessionMode.SENTENCE: TrainingMode.SENTENCE,
}


def filter_pool(pool: Iterable[WordProgress], config: SessionConfig) -> List[WordProgress]:
    """Words matching the topic filter and at least one requested tag."""
    filtered = []
    for word in pool:
        if config.topic_id != "all" and word.topic_id != config.topic_id:
            continue
        if config.tags and not any(tag in config.tags for tag in word.tags):
            continue
        filtered.append(word)
    return filtered


def partition(
    words: List[WordProgress], now: datetime
) -> Tuple[List[WordProgress], List[WordProgress], List[WordProgress]]:
    """Split words into ordered due, in-progress and new buckets."""
    due = [w for w in words if w.status is not WordStatus.NEW and is_due(w, now)]
    in_progress = [w for w in words if w.status is WordStatus.IN_PROGRESS and not is_due(w, now)]
    new = [w for w in words if w.status is WordStatus.NEW]

    # Unscheduled words sort first; sorted() is stable, so ties keep pool order
    due.sort(key=lambda w: (w.due_at is not None, w.due_at.timestamp() if w.due_at else 0.0))
    in_progress.sort(key=lambda w: w.difficulty, reverse=True)
    return due, in_progress, new


def bucket_targets(size: int) -> Tuple[int, int, int]:
    """How many due, in-progress and new items a session of ``size`` aims for."""
    due_target = min(size, round_half_up(size * settings.session.due_ratio))
    in_progress_target = min(size - due_target, round_half_up(size * settings.session.in_progress_ratio))
    new_target = max(0, size - due_target - in_progress_target)
    return due_target, in_progress_target, new_target


def pick_training_mode(mode: SessionMode, rng: random.Random) -> TrainingMode:
    """Training mode for one item of a session requested in ``mode``."""
    if mode is SessionMode.MIXED:
        return rng.choice(list(TrainingMode))
    training_mode = _MODE_BY_SESSION_MODE.get(mode)
    if training_mode is None:
        raise ValueError(f"Unknown session mode: {mode!r}")
    return training_mode


def build_session(
    pool: Iterable[WordProgress],
    config: SessionConfig,
    now: datetime,
    rng: Optional[random.Random] = None,
) -> List[SessionItem]:
    """Choose up to ``config.size`` words from the pool and return them as a shuffled queue.

    An empty result means nothing matched the filters; it is not a valid session.
    """
    rng = rng or random.Random()
    filtered = filter_pool(pool, config)
    if not filtered:
        logger.info(f"No words match topic {config.topic_id!r} and tags {sorted(config.tags)}")
        return []

    due, in_progress, new = partition(filtered, now)
    size = config.size
    due_target, in_progress_target, new_target = bucket_targets(size)
    logger.debug(
        f"Buckets: due {len(due)}, in progress {len(in_progress)}, new {len(new)}; "
        f"targets {due_target}/{in_progress_target}/{new_target}"
    )

    chosen: List[Tuple[WordProgress, Origin]] = []
    chosen.extend((word, Origin.DUE) for word in due[:due_target])
    chosen.extend((word, Origin.IN_PROGRESS) for word in in_progress[:in_progress_target])
    chosen.extend((word, Origin.NEW) for word in new[:new_target])

    if len(chosen) < size:
        selected_ids = {word.id for word, _ in chosen}
        remaining = [word for word in filtered if word.id not in selected_ids]
        for word in remaining[:size - len(chosen)]:
            origin = Origin.NEW if word.status is WordStatus.NEW else Origin.IN_PROGRESS
            chosen.append((word, origin))

    items = [
        SessionItem(word_id=word.id, training_mode=pick_training_mode(config.mode, rng), origin=origin)
        for word, origin in chosen
    ]
    rng.shuffle(items)
    logger.info(f"Built session of {len(items)} items (requested {size}, mode {config.mode.value})")
    return items
