"""Runtime of a single review session."""
import asyncio
import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from vocab_builder import monitoring
from vocab_builder.config import settings
from vocab_builder.errors import NoEligibleItemsError, PreconditionError, SessionFinishedError
from vocab_builder.models.word_models import (
    Origin,
    Rating,
    SessionItem,
    SessionStats,
    TrainingMode,
    WordProgress,
    WordStatus,
    utc_now,
)
from vocab_builder.services.answer_checker import (
    MAX_HINT_LEVEL,
    build_hints,
    cap_rating,
    grade_answer,
    is_typed_mode,
)
from vocab_builder.services.srs import apply_rating

logger = logging.getLogger(__name__)


class SessionOutcome(Enum):
    """How far a session has got."""
    RUNNING = "running"
    COMPLETED = "completed"  # Queue exhausted
    TIMED_OUT = "timed_out"  # Deadline reached first
    DISPOSED = "disposed"  # Replaced or closed by the caller


@dataclass
class CardState:
    """Transient state of the card currently shown."""
    shown_answer: bool = False
    hint_level: int = 0
    pending_rating: Optional[Rating] = None
    spelling_mistakes: int = 0


@dataclass
class RatingOutcome:
    """What a submitted rating did to the session."""
    word: WordProgress
    rating: Rating
    outcome: SessionOutcome
    reinserted_at: Optional[int] = None
    deferred: bool = False
    completed_word: bool = False


class DeadlineTimer:
    """Cancellable one-shot timer running as an asyncio task."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = max(0.0, delay)
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Schedule the callback on the running loop; returns False without one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, deadline will only be checked on demand")
            return False
        self._task = loop.create_task(self._run())
        return True

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        try:
            self.callback()
        except Exception:
            logger.exception("Session deadline callback failed")


class SessionRuntime:
    """Walks a session queue, applying ratings and retrying lapsed words.

    The runtime owns the queue, the statistics and an in-memory copy of
    every word in the queue; that copy is authoritative as soon as a rating
    is applied. Writes go through ``persist`` and a failed write is kept in
    ``pending_writes`` for :meth:`flush_pending` instead of undoing the step.
    """

    def __init__(
        self,
        queue: List[SessionItem],
        words: Iterable[WordProgress],
        persist: Optional[Callable[[WordProgress], None]] = None,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
        timeout: Optional[timedelta] = None,
        on_timeout: Optional[Callable[["SessionRuntime"], None]] = None,
    ):
        if not queue:
            raise NoEligibleItemsError("Cannot start a session without items")
        now = now or utc_now()

        self.words: Dict[str, WordProgress] = {word.id: word for word in words}
        missing = {item.word_id for item in queue} - self.words.keys()
        if missing:
            raise PreconditionError(f"Queue references unknown words: {sorted(missing)}")

        self.queue: List[SessionItem] = list(queue)
        self.index = 0
        self.stats = SessionStats(total=len(self.queue), started_at=now)
        self.attempt_counts: Dict[str, int] = {}
        self.seen_in_session: Set[str] = set()
        self.deadline = now + (timeout or timedelta(minutes=settings.session.timeout_minutes))
        self.card = CardState()
        self.outcome = SessionOutcome.RUNNING
        self.pending_writes: Dict[str, WordProgress] = {}

        self._persist = persist
        self._rng = rng or random.Random()
        self._on_timeout = on_timeout
        self._in_flight = False
        self._timer: Optional[DeadlineTimer] = None

        monitoring.active_sessions.inc()
        logger.info(f"Session started with {len(self.queue)} items, deadline {self.deadline.isoformat()}")

    # --- state -----------------------------------------------------------

    @property
    def is_finished(self) -> bool:
        return self.outcome is not SessionOutcome.RUNNING

    @property
    def current_item(self) -> Optional[SessionItem]:
        if self.is_finished or self.index >= len(self.queue):
            return None
        return self.queue[self.index]

    @property
    def current_word(self) -> Optional[WordProgress]:
        item = self.current_item
        return self.words[item.word_id] if item else None

    def visible_hints(self) -> List[str]:
        """Hints revealed so far for the current card."""
        word = self.current_word
        if word is None:
            return []
        return build_hints(word)[:self.card.hint_level]

    # --- timer -----------------------------------------------------------

    def arm_timer(self, now: Optional[datetime] = None) -> bool:
        """Schedule the deadline on the running event loop."""
        self._cancel_timer()
        remaining = (self.deadline - (now or utc_now())).total_seconds()
        self._timer = DeadlineTimer(remaining, self._on_deadline)
        return self._timer.start()

    def _on_deadline(self) -> None:
        self._timer = None
        self.expire()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def check_timeout(self, now: Optional[datetime] = None) -> bool:
        """End the session if its deadline has passed; returns whether it timed out."""
        now = now or utc_now()
        if not self.is_finished and now >= self.deadline:
            self.expire(now)
        return self.outcome is SessionOutcome.TIMED_OUT

    def expire(self, now: Optional[datetime] = None) -> None:
        """Terminate the session because its deadline was reached."""
        if self.is_finished:
            return
        self._finish(now or utc_now(), SessionOutcome.TIMED_OUT)
        logger.info(f"Session timed out after {self.stats.answered} answers")
        if self._on_timeout is not None:
            self._on_timeout(self)

    def dispose(self, now: Optional[datetime] = None) -> None:
        """Stop the session and its timer; used when a new session replaces it."""
        if self.is_finished:
            self._cancel_timer()
            return
        self._finish(now or utc_now(), SessionOutcome.DISPOSED)

    def _finish(self, now: datetime, outcome: SessionOutcome) -> None:
        self._cancel_timer()
        self.outcome = outcome
        self.stats.finished_at = now
        monitoring.active_sessions.dec()
        monitoring.sessions_finished.labels(outcome=outcome.value).inc()
        monitoring.session_duration.observe(self.stats.duration_seconds)

    # --- card actions ----------------------------------------------------

    def _require_running(self, now: datetime) -> None:
        self.check_timeout(now)
        if self.is_finished:
            raise SessionFinishedError(f"Session already {self.outcome.value}")
        if self.current_item is None:
            raise SessionFinishedError("Session queue is exhausted")

    def show_hint(self, now: Optional[datetime] = None) -> List[str]:
        """Reveal one more hint for the current card."""
        self._require_running(now or utc_now())
        self.card.hint_level = min(MAX_HINT_LEVEL, self.card.hint_level + 1)
        return self.visible_hints()

    def reveal_answer(self, now: Optional[datetime] = None) -> WordProgress:
        self._require_running(now or utc_now())
        self.card.shown_answer = True
        return self.current_word

    def submit_answer(self, answer: str, now: Optional[datetime] = None, lenient: bool = True) -> Rating:
        """Check a typed answer and hold the earned rating until :meth:`confirm`."""
        self._require_running(now or utc_now())
        item = self.current_item
        if not is_typed_mode(item.training_mode):
            raise PreconditionError(f"Mode {item.training_mode.value} does not take typed answers")
        if self.card.pending_rating is not None:
            raise PreconditionError("An answer for this card is already pending")

        rating = grade_answer(self.current_word, answer, self.card.hint_level, lenient)
        if rating is Rating.AGAIN and item.training_mode is TrainingMode.SPELLING:
            self.card.spelling_mistakes += 1
        self.card.pending_rating = rating
        self.card.shown_answer = True
        return rating

    def confirm(self, now: Optional[datetime] = None) -> RatingOutcome:
        """Apply the rating held by :meth:`submit_answer`."""
        if self.card.pending_rating is None:
            raise PreconditionError("No pending rating to confirm")
        return self.submit_rating(self.card.pending_rating, now)

    def rate(self, rating: Rating, now: Optional[datetime] = None) -> RatingOutcome:
        """Self-assessed rating, capped at hard when the learner leaned on hints."""
        if not isinstance(rating, Rating):
            raise PreconditionError(f"Unknown rating: {rating!r}")
        return self.submit_rating(cap_rating(rating, self.card.hint_level), now)

    def skip(self, now: Optional[datetime] = None) -> RatingOutcome:
        """Give up on the current card; counts as a lapse and a skip."""
        return self.submit_rating(Rating.AGAIN, now, skipped=True)

    # --- rating ----------------------------------------------------------

    def submit_rating(self, rating: Rating, now: Optional[datetime] = None, skipped: bool = False) -> RatingOutcome:
        """Apply ``rating`` to the current item and move the session on."""
        now = now or utc_now()
        if not isinstance(rating, Rating):
            raise PreconditionError(f"Unknown rating: {rating!r}")
        self._require_running(now)
        if self._in_flight:
            raise PreconditionError("A rating is already being applied to this card")

        self._in_flight = True
        try:
            return self._apply(rating, now, skipped)
        finally:
            self._in_flight = False

    def _apply(self, rating: Rating, now: datetime, skipped: bool) -> RatingOutcome:
        item = self.current_item
        word = self.words[item.word_id]
        is_new_introduction = word.status is WordStatus.NEW and word.id not in self.seen_in_session

        updated = apply_rating(word, rating, now)
        if rating is Rating.AGAIN:
            updated.wrong_count = word.wrong_count + 1
        else:
            updated.right_count = word.right_count + 1
        if skipped:
            updated.skip_count = word.skip_count + 1

        completed_word = updated.status is WordStatus.COMPLETED and word.status is not WordStatus.COMPLETED
        self.stats.answered += 1
        if rating is Rating.AGAIN:
            self.stats.lapses += 1
        else:
            self.stats.correct += 1
        if item.origin is Origin.DUE:
            self.stats.due_done += 1
        if is_new_introduction:
            self.stats.new_introduced += 1
        if completed_word:
            self.stats.moved_completed += 1
            monitoring.words_completed.inc()
        monitoring.ratings_applied.labels(rating=rating.value).inc()

        self.words[word.id] = updated
        self.seen_in_session.add(word.id)
        self._save(updated)

        result = RatingOutcome(word=updated, rating=rating, outcome=self.outcome, completed_word=completed_word)
        if rating is Rating.AGAIN:
            attempts = self.attempt_counts.get(word.id, 0) + 1
            self.attempt_counts[word.id] = attempts
            if attempts >= settings.session.max_again_attempts:
                postponed = replace(
                    updated,
                    tags=list(updated.tags),
                    due_at=now + timedelta(hours=settings.session.deferral_hours),
                    updated_at=now,
                )
                self.words[word.id] = postponed
                self._save(postponed)
                result.word = postponed
                result.deferred = True
                monitoring.retry_deferrals.inc()
                logger.info(f"Word {word.id} missed {attempts} times, deferred to {postponed.due_at.isoformat()}")
            else:
                offset = self._rng.choice(settings.session.retry_offsets)
                insert_at = min(len(self.queue), self.index + offset)
                self.queue.insert(insert_at, replace(item))
                result.reinserted_at = insert_at
                monitoring.retry_reinsertions.inc()
                logger.debug(f"Word {word.id} reinserted at position {insert_at} (attempt {attempts})")

        self.advance(now)
        result.outcome = self.outcome
        return result

    def advance(self, now: Optional[datetime] = None) -> Optional[SessionItem]:
        """Move to the next item, finishing the session when the queue runs out."""
        now = now or utc_now()
        if self.is_finished:
            raise SessionFinishedError(f"Session already {self.outcome.value}")
        self.index += 1
        if self.index >= len(self.queue):
            self._finish(now, SessionOutcome.COMPLETED)
            logger.info(
                f"Session complete: {self.stats.correct}/{self.stats.answered} correct, "
                f"{self.stats.new_introduced} new, {self.stats.moved_completed} completed"
            )
            return None
        self.card = CardState()
        return self.queue[self.index]

    # --- persistence -----------------------------------------------------

    def _save(self, word: WordProgress) -> None:
        if self._persist is None:
            return
        try:
            self._persist(word)
        except Exception as e:
            # Keep the newest state only; it supersedes any earlier failed write
            self.pending_writes[word.id] = word
            monitoring.store_write_errors.labels(error_type=type(e).__name__).inc()
            logger.error(f"Failed to persist word {word.id}, will retry: {e}")
        else:
            self.pending_writes.pop(word.id, None)

    def flush_pending(self) -> int:
        """Retry failed writes; returns how many are still pending."""
        for word in list(self.pending_writes.values()):
            self._save(word)
        return len(self.pending_writes)
