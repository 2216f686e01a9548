"""Domain models for words, topics and review sessions."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from vocab_builder.config import settings
from vocab_builder.errors import PreconditionError

logger = logging.getLogger(__name__)

DEFAULT_EASE = 2.5
MIN_EASE = 1.3


class WordStatus(Enum):
    """Learning status of a word."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Rating(Enum):
    """Self-assessed recall quality for a single review."""
    AGAIN = "again"  # Forgotten, resets the streak
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class TrainingMode(Enum):
    """Ways a word can be drilled."""
    FLASHCARDS = "flashcards"  # Show the word, learner rates recall
    FILL_BLANK = "fill_blank"  # Type the word missing from the example
    SPELLING = "spelling"  # Type the word from its meaning
    SENTENCE = "sentence"  # Write an own sentence with the word


class SessionMode(Enum):
    """Mode requested for a whole session."""
    MIXED = "mixed"  # Random training mode per item
    FLASHCARDS = "flashcards"
    FILL_BLANK = "fill_blank"
    SPELLING = "spelling"
    SENTENCE = "sentence"


class Origin(Enum):
    """Selection bucket a session item was drawn from."""
    DUE = "due"
    IN_PROGRESS = "in_progress"
    NEW = "new"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp the way exported snapshots store it."""
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a snapshot."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _counter(data: Dict[str, Any], key: str, word_id: str) -> int:
    """Non-negative whole number from a snapshot record, 0 when absent."""
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Word {word_id} has invalid {key} {value!r}")
    return value


def new_id() -> str:
    """Generate an identifier for topics and words."""
    return str(uuid.uuid4())


@dataclass
class Topic:
    """A named group of words."""
    topic_id: str
    name: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topicId": self.topic_id,
            "name": self.name,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Topic":
        if not isinstance(data, dict):
            raise ValueError("Topic must be an object")
        topic_id = data.get("topicId")
        if not isinstance(topic_id, str) or not topic_id:
            raise ValueError("Topic is missing topicId")
        return cls(
            topic_id=topic_id,
            name=str(data.get("name", "")),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
        )


@dataclass
class WordProgress:
    """A vocabulary item together with its scheduling state."""
    id: str
    topic_id: str
    word_or_phrase: str = ""
    transcription: str = ""
    meaning_en: str = ""
    example_usage: str = ""
    translation_uk: str = ""
    tags: List[str] = field(default_factory=list)
    status: WordStatus = WordStatus.NEW
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    due_at: Optional[datetime] = None
    interval_days: int = 0
    ease: float = DEFAULT_EASE
    reps: int = 0
    lapses: int = 0
    right_count: int = 0
    wrong_count: int = 0
    skip_count: int = 0
    last_reviewed_at: Optional[datetime] = None

    @property
    def difficulty(self) -> int:
        """How often the word has been missed."""
        return self.lapses + self.wrong_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topicId": self.topic_id,
            "wordOrPhrase": self.word_or_phrase,
            "transcription": self.transcription,
            "meaningEn": self.meaning_en,
            "exampleUsage": self.example_usage,
            "translationUk": self.translation_uk,
            "tags": list(self.tags),
            "status": self.status.value,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "dueAt": to_iso(self.due_at),
            "intervalDays": self.interval_days,
            "ease": self.ease,
            "reps": self.reps,
            "lapses": self.lapses,
            "rightCount": self.right_count,
            "wrongCount": self.wrong_count,
            "skipCount": self.skip_count,
            "lastReviewedAt": to_iso(self.last_reviewed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordProgress":
        """Build a word from its snapshot form, raising ValueError when malformed."""
        if not isinstance(data, dict):
            raise ValueError("Word must be an object")
        word_id = data.get("id")
        if not isinstance(word_id, str) or not word_id:
            raise ValueError("Word is missing id")
        topic_id = data.get("topicId")
        if not isinstance(topic_id, str):
            raise ValueError(f"Word {word_id} is missing topicId")
        tags = data.get("tags", [])
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise ValueError(f"Word {word_id} has invalid tags")

        ease = data.get("ease", DEFAULT_EASE)
        if isinstance(ease, bool) or not isinstance(ease, (int, float)):
            raise ValueError(f"Word {word_id} has invalid ease {ease!r}")
        created_at = parse_timestamp(data.get("createdAt")) or utc_now()

        return cls(
            id=word_id,
            topic_id=topic_id,
            word_or_phrase=str(data.get("wordOrPhrase", "")),
            transcription=str(data.get("transcription", "")),
            meaning_en=str(data.get("meaningEn", "")),
            example_usage=str(data.get("exampleUsage", "")),
            translation_uk=str(data.get("translationUk", "")),
            tags=list(tags),
            status=WordStatus(data.get("status", WordStatus.NEW.value)),
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt")) or created_at,
            due_at=parse_timestamp(data.get("dueAt")),
            interval_days=_counter(data, "intervalDays", word_id),
            ease=max(MIN_EASE, float(ease)),
            reps=_counter(data, "reps", word_id),
            lapses=_counter(data, "lapses", word_id),
            right_count=_counter(data, "rightCount", word_id),
            wrong_count=_counter(data, "wrongCount", word_id),
            skip_count=_counter(data, "skipCount", word_id),
            last_reviewed_at=parse_timestamp(data.get("lastReviewedAt")),
        )


@dataclass(frozen=True)
class SessionItem:
    """One entry of a session queue."""
    word_id: str
    training_mode: TrainingMode
    origin: Origin


@dataclass
class SessionConfig:
    """What the learner asked to review."""
    size: int = field(default_factory=lambda: settings.session.default_size)
    mode: SessionMode = SessionMode.MIXED
    topic_id: str = "all"
    tags: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if isinstance(self.mode, str):
            self.mode = SessionMode(self.mode)
        self.tags = frozenset(self.tags)
        if not isinstance(self.size, int) or self.size < 1:
            raise PreconditionError(f"Session size must be a positive integer, got {self.size!r}")


@dataclass
class SessionStats:
    """Running counters of a review session."""
    total: int = 0
    answered: int = 0
    correct: int = 0
    due_done: int = 0
    new_introduced: int = 0
    moved_completed: int = 0
    lapses: int = 0
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def accuracy(self) -> int:
        """Share of correct answers, in whole percent."""
        if self.answered == 0:
            return 0
        return int(self.correct * 100 / self.answered + 0.5)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
