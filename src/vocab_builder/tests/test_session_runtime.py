"""Tests for the review session runtime."""
import asyncio
import random
from datetime import timedelta
from typing import List
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from vocab_builder.errors import NoEligibleItemsError, PreconditionError, SessionFinishedError
from vocab_builder.models.word_models import (
    Origin,
    Rating,
    SessionConfig,
    SessionItem,
    SessionMode,
    TrainingMode,
    WordStatus,
    utc_now,
)
from vocab_builder.services.session_builder import build_session
from vocab_builder.services.session_runtime import DeadlineTimer, SessionOutcome, SessionRuntime


def make_queue(words, mode=TrainingMode.FLASHCARDS, origin=Origin.NEW) -> List[SessionItem]:
    return [SessionItem(word_id=word.id, training_mode=mode, origin=origin) for word in words]


@pytest.fixture
def words(make_word):
    return [make_word() for _ in range(10)]


@pytest.fixture
def persist() -> Mock:
    return Mock()


@pytest.fixture
def runtime(words, persist, now) -> SessionRuntime:
    return SessionRuntime(make_queue(words), words, persist=persist, now=now, rng=random.Random(11))


def test_initial_state(runtime: SessionRuntime, words, now) -> None:
    assert runtime.index == 0
    assert runtime.stats.total == 10
    assert runtime.stats.answered == 0
    assert runtime.stats.started_at == now
    assert runtime.stats.finished_at is None
    assert runtime.deadline == now + timedelta(minutes=10)
    assert runtime.current_word.id == words[0].id
    assert runtime.outcome is SessionOutcome.RUNNING


def test_empty_queue_starts_no_session(words) -> None:
    with pytest.raises(NoEligibleItemsError):
        SessionRuntime([], words)


def test_single_new_word_end_to_end(make_word, persist, now) -> None:
    """Test a size-1 session with one new word rated good."""
    word = make_word()
    queue = build_session([word], SessionConfig(size=1, mode=SessionMode.FLASHCARDS), now, random.Random(0))
    runtime = SessionRuntime(queue, [word], persist=persist, now=now)

    result = runtime.submit_rating(Rating.GOOD, now)

    stats = runtime.stats
    assert (stats.total, stats.answered, stats.correct, stats.new_introduced) == (1, 1, 1, 1)
    assert stats.finished_at == now
    assert result.outcome is SessionOutcome.COMPLETED
    assert result.word.status is WordStatus.IN_PROGRESS
    assert result.word.interval_days == 1
    assert result.word.right_count == 1
    persist.assert_called_once_with(result.word)


def test_again_reinserts_within_offset_range(runtime: SessionRuntime, words, now) -> None:
    """Test that a first lapse reappears 5 to 7 positions later."""
    result = runtime.submit_rating(Rating.AGAIN, now)

    assert 5 <= result.reinserted_at <= 7
    assert len(runtime.queue) == 11
    assert runtime.queue[result.reinserted_at].word_id == words[0].id
    assert runtime.queue[result.reinserted_at].origin is Origin.NEW
    assert runtime.index == 1
    assert runtime.attempt_counts[words[0].id] == 1
    assert result.word.wrong_count == 1
    assert result.word.due_at == now + timedelta(minutes=10)


@pytest.mark.parametrize("seed", range(5))
def test_second_again_reinserts_within_offset_range(make_word, now, seed) -> None:
    """Test that a repeated lapse also comes back 5 to 7 positions after the current one."""
    words = [make_word() for _ in range(15)]
    runtime = SessionRuntime(make_queue(words), words, now=now, rng=random.Random(seed))

    first = runtime.submit_rating(Rating.AGAIN, now)
    while runtime.current_word.id != words[0].id:
        runtime.submit_rating(Rating.GOOD, now)
    assert runtime.index == first.reinserted_at

    second = runtime.submit_rating(Rating.AGAIN, now)

    assert 5 <= second.reinserted_at - first.reinserted_at <= 7
    assert runtime.queue[second.reinserted_at].word_id == words[0].id
    assert runtime.attempt_counts[words[0].id] == 2
    assert second.deferred is False


def test_reinsertion_is_clamped_to_queue_end(make_word, now) -> None:
    words = [make_word() for _ in range(3)]
    runtime = SessionRuntime(make_queue(words), words, now=now, rng=random.Random(4))
    result = runtime.submit_rating(Rating.AGAIN, now)
    assert result.reinserted_at == 3
    assert [item.word_id for item in runtime.queue] == [w.id for w in words] + [words[0].id]


def test_third_again_defers_by_a_day(make_word, persist, now) -> None:
    """Test that the third lapse is not reinserted and is pushed to tomorrow."""
    word = make_word()
    runtime = SessionRuntime(make_queue([word]), [word], persist=persist, now=now, rng=random.Random(9))

    first = runtime.submit_rating(Rating.AGAIN, now)
    second = runtime.submit_rating(Rating.AGAIN, now + timedelta(seconds=30))
    assert first.reinserted_at == 1
    assert second.reinserted_at == 2
    assert runtime.current_word.id == word.id

    third_at = now + timedelta(minutes=1)
    third = runtime.submit_rating(Rating.AGAIN, third_at)

    assert third.deferred is True
    assert third.reinserted_at is None
    assert third.word.due_at == third_at + timedelta(hours=24)
    assert len(runtime.queue) == 3
    assert runtime.outcome is SessionOutcome.COMPLETED
    assert runtime.words[word.id].due_at == third_at + timedelta(hours=24)
    assert persist.call_count == 4  # one write per rating plus the deferral
    assert persist.call_args.args[0].due_at == third_at + timedelta(hours=24)

    stats = runtime.stats
    assert (stats.answered, stats.correct, stats.lapses, stats.new_introduced) == (3, 0, 3, 1)
    assert runtime.words[word.id].wrong_count == 3
    assert runtime.words[word.id].lapses == 3


def test_stats_track_due_and_completed(make_word, now) -> None:
    """Test due_done and moved_completed counters."""
    ripe = make_word(
        status=WordStatus.IN_PROGRESS, reps=4, ease=2.5, interval_days=10, due_at=now - timedelta(hours=1)
    )
    other = make_word(status=WordStatus.IN_PROGRESS, reps=1, interval_days=1, due_at=now - timedelta(days=1))
    queue = make_queue([ripe, other], origin=Origin.DUE)
    runtime = SessionRuntime(queue, [ripe, other], now=now)

    result = runtime.submit_rating(Rating.GOOD, now)
    assert result.completed_word is True
    assert result.word.status is WordStatus.COMPLETED
    runtime.submit_rating(Rating.HARD, now)

    assert runtime.stats.due_done == 2
    assert runtime.stats.moved_completed == 1
    assert runtime.stats.new_introduced == 0
    assert runtime.stats.correct == 2
    assert runtime.outcome is SessionOutcome.COMPLETED


def test_skip_counts_as_lapse_and_skip(runtime: SessionRuntime, words, now) -> None:
    result = runtime.skip(now)
    assert result.rating is Rating.AGAIN
    assert result.word.skip_count == 1
    assert result.word.wrong_count == 1
    assert result.word.right_count == 0
    assert runtime.stats.lapses == 1


def test_new_word_counted_once_per_session(make_word, now) -> None:
    word = make_word()
    filler = [make_word() for _ in range(6)]
    runtime = SessionRuntime(make_queue([word, *filler]), [word, *filler], now=now, rng=random.Random(1))

    runtime.submit_rating(Rating.AGAIN, now)
    while runtime.current_word.id != word.id:
        runtime.submit_rating(Rating.GOOD, now)
    runtime.submit_rating(Rating.GOOD, now)

    # every rating so far introduced a new word except the second look at `word`
    assert runtime.stats.new_introduced == runtime.stats.answered - 1


def test_invalid_rating_mutates_nothing(runtime: SessionRuntime, words, persist, now) -> None:
    with pytest.raises(PreconditionError):
        runtime.submit_rating("good", now)
    assert runtime.index == 0
    assert runtime.stats.answered == 0
    assert runtime.words[words[0].id] is words[0]
    persist.assert_not_called()


def test_rating_while_in_flight_is_rejected(make_word, now) -> None:
    """Test that a rating issued while another is being applied is refused."""
    words = [make_word() for _ in range(2)]
    errors = []

    def reentrant_persist(word):
        try:
            runtime.submit_rating(Rating.GOOD, now)
        except PreconditionError as e:
            errors.append(e)

    runtime = SessionRuntime(make_queue(words), words, persist=reentrant_persist, now=now)
    runtime.submit_rating(Rating.EASY, now)

    assert len(errors) == 1
    assert runtime.stats.answered == 1
    assert runtime.index == 1


def test_finished_session_rejects_ratings(make_word, now) -> None:
    word = make_word()
    runtime = SessionRuntime(make_queue([word]), [word], now=now)
    runtime.submit_rating(Rating.GOOD, now)

    with pytest.raises(SessionFinishedError):
        runtime.submit_rating(Rating.GOOD, now)
    with pytest.raises(SessionFinishedError):
        runtime.advance(now)
    assert runtime.stats.answered == 1


def test_check_timeout(runtime: SessionRuntime, now) -> None:
    """Test that the deadline ends the session and further ratings are inert."""
    assert runtime.check_timeout(now + timedelta(minutes=9, seconds=59)) is False
    assert runtime.outcome is SessionOutcome.RUNNING

    deadline = now + timedelta(minutes=10)
    assert runtime.check_timeout(deadline) is True
    assert runtime.outcome is SessionOutcome.TIMED_OUT
    assert runtime.stats.finished_at == deadline

    with pytest.raises(SessionFinishedError):
        runtime.submit_rating(Rating.GOOD, deadline + timedelta(seconds=1))
    assert runtime.stats.answered == 0


def test_late_rating_loses_to_deadline(runtime: SessionRuntime, now) -> None:
    late = now + timedelta(minutes=11)
    with pytest.raises(SessionFinishedError):
        runtime.submit_rating(Rating.GOOD, late)
    assert runtime.outcome is SessionOutcome.TIMED_OUT
    assert runtime.stats.finished_at == late
    assert runtime.stats.answered == 0


def test_timeout_after_completion_is_inert(make_word, now) -> None:
    word = make_word()
    runtime = SessionRuntime(make_queue([word]), [word], now=now)
    runtime.submit_rating(Rating.GOOD, now)
    assert runtime.check_timeout(now + timedelta(hours=1)) is False
    assert runtime.outcome is SessionOutcome.COMPLETED
    assert runtime.stats.finished_at == now


def test_failed_write_does_not_roll_back(make_word, now) -> None:
    """Test that a store failure keeps the session moving and is retried later."""
    words = [make_word() for _ in range(2)]
    persist = Mock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))
    runtime = SessionRuntime(make_queue(words), words, persist=persist, now=now)

    result = runtime.submit_rating(Rating.GOOD, now)

    assert runtime.index == 1
    assert runtime.words[words[0].id].reps == 1
    assert runtime.pending_writes == {words[0].id: result.word}

    persist.side_effect = None
    assert runtime.flush_pending() == 0
    persist.assert_called_with(result.word)


def test_card_state_resets_on_advance(make_word, now) -> None:
    words = [make_word(word_or_phrase="take off", transcription="teɪk ɒf", translation_uk="злітати")]
    words.append(make_word())
    runtime = SessionRuntime(make_queue(words), words, now=now)

    assert runtime.show_hint(now) == ["Transcription: teɪk ɒf"]
    hints = runtime.show_hint(now)
    assert hints[1] == "First letter: t"
    runtime.reveal_answer(now)
    assert runtime.card.shown_answer is True

    runtime.rate(Rating.EASY, now)

    assert runtime.card.hint_level == 0
    assert runtime.card.shown_answer is False
    assert runtime.card.pending_rating is None


def test_rate_caps_at_hard_after_two_hints(make_word, now) -> None:
    words = [make_word(), make_word()]
    runtime = SessionRuntime(make_queue(words), words, now=now)
    runtime.show_hint(now)
    runtime.show_hint(now)

    result = runtime.rate(Rating.EASY, now)
    assert result.rating is Rating.HARD


def test_hint_level_is_bounded(make_word, now) -> None:
    words = [make_word()]
    runtime = SessionRuntime(make_queue(words), words, now=now)
    for _ in range(6):
        hints = runtime.show_hint(now)
    assert runtime.card.hint_level == 4
    assert len(hints) == 4


def test_typed_answer_flow(make_word, now) -> None:
    """Test submit_answer holding a rating until it is confirmed."""
    word = make_word(word_or_phrase="Give up")
    filler = make_word()
    queue = make_queue([word, filler], mode=TrainingMode.SPELLING)
    runtime = SessionRuntime(queue, [word, filler], now=now, rng=random.Random(3))

    assert runtime.submit_answer("giv up", now) is Rating.AGAIN
    assert runtime.card.spelling_mistakes == 1
    assert runtime.card.shown_answer is True
    with pytest.raises(PreconditionError):
        runtime.submit_answer("give up", now)

    result = runtime.confirm(now)
    assert result.rating is Rating.AGAIN
    assert result.reinserted_at == 2

    assert runtime.current_word.id == filler.id


def test_correct_typed_answer_rates_good(make_word, now) -> None:
    word = make_word(word_or_phrase="look after")
    runtime = SessionRuntime(make_queue([word], mode=TrainingMode.FILL_BLANK), [word], now=now)
    assert runtime.submit_answer("Look after.", now) is Rating.GOOD
    assert runtime.confirm(now).word.interval_days == 1


def test_typed_answer_matches_leniently_by_default(make_word, now) -> None:
    """Test that a sentence containing the key words of a phrase is accepted unless strict."""
    word = make_word(word_or_phrase="give up")
    queue = make_queue([word], mode=TrainingMode.FILL_BLANK)

    lenient = SessionRuntime(queue, [word], now=now)
    assert lenient.submit_answer("I will never give it up", now) is Rating.GOOD

    strict = SessionRuntime(queue, [word], now=now)
    assert strict.submit_answer("I will never give it up", now, lenient=False) is Rating.AGAIN


def test_typed_answer_rejected_for_flashcards(runtime: SessionRuntime, now) -> None:
    with pytest.raises(PreconditionError):
        runtime.submit_answer("anything", now)
    with pytest.raises(PreconditionError):
        runtime.confirm(now)


def test_dispose_stops_session(runtime: SessionRuntime, now) -> None:
    runtime.dispose(now)
    assert runtime.outcome is SessionOutcome.DISPOSED
    assert runtime.stats.finished_at == now
    with pytest.raises(SessionFinishedError):
        runtime.submit_rating(Rating.GOOD, now)


def test_queue_with_unknown_word_is_rejected(words) -> None:
    queue = make_queue(words)
    with pytest.raises(PreconditionError):
        SessionRuntime(queue, words[1:])


@pytest.mark.asyncio
async def test_deadline_timer_fires(make_word) -> None:
    """Test that the armed deadline ends the session and reports the timeout."""
    words = [make_word(), make_word()]
    reported = []
    runtime = SessionRuntime(
        make_queue(words),
        words,
        timeout=timedelta(milliseconds=50),
        on_timeout=reported.append,
    )
    assert runtime.arm_timer() is True

    await asyncio.sleep(0.3)

    assert runtime.outcome is SessionOutcome.TIMED_OUT
    assert runtime.stats.finished_at is not None
    assert reported == [runtime]


@pytest.mark.asyncio
async def test_completion_cancels_deadline_timer(make_word) -> None:
    word = make_word()
    reported = []
    runtime = SessionRuntime(
        make_queue([word]),
        [word],
        timeout=timedelta(milliseconds=100),
        on_timeout=reported.append,
    )
    runtime.arm_timer()
    runtime.submit_rating(Rating.GOOD, utc_now())

    await asyncio.sleep(0.3)

    assert runtime.outcome is SessionOutcome.COMPLETED
    assert reported == []


@pytest.mark.asyncio
async def test_cancelled_deadline_timer_stays_cancelled() -> None:
    fired = []
    timer = DeadlineTimer(10, lambda: fired.append(True))
    assert timer.start() is True
    task = timer._task

    timer.cancel()
    await asyncio.sleep(0.05)

    assert task.cancelled()
    assert timer.active is False
    assert fired == []


@pytest.mark.asyncio
async def test_failing_timeout_callback_is_logged(make_word, caplog) -> None:
    """Test that an error raised by the timeout handler is logged and the session still ends."""
    word = make_word()

    def explode(_runtime):
        raise RuntimeError("handler broke")

    runtime = SessionRuntime(make_queue([word]), [word], timeout=timedelta(milliseconds=20), on_timeout=explode)
    runtime.arm_timer()

    await asyncio.sleep(0.2)

    assert runtime.outcome is SessionOutcome.TIMED_OUT
    assert "Session deadline callback failed" in caplog.text
    assert "handler broke" in caplog.text


def test_arm_timer_without_loop(runtime: SessionRuntime) -> None:
    assert runtime.arm_timer() is False


if __name__ == "__main__":
    pytest.main([__file__])
