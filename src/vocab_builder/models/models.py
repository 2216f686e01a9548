"""Database models for topics and words."""
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
)

from vocab_builder.models.base import Base
from vocab_builder.models.word_models import (
    Topic,
    WordProgress,
    WordStatus,
    as_utc,
)


class TopicRecord(Base):
    """Topic model."""

    __tablename__ = "topics"

    topic_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_topic(self) -> Topic:
        return Topic(
            topic_id=self.topic_id,
            name=self.name,
            created_at=as_utc(self.created_at),
        )

    def update_from(self, topic: Topic) -> None:
        self.name = topic.name
        self.created_at = topic.created_at


class WordRecord(Base):
    """Word model with its scheduling state."""

    __tablename__ = "words"

    id = Column(String, primary_key=True)
    # No foreign key: imported words may reference topics that are not stored
    topic_id = Column(String, nullable=False, index=True)
    word_or_phrase = Column(String, nullable=False, default="")
    transcription = Column(String, nullable=False, default="")
    meaning_en = Column(String, nullable=False, default="")
    example_usage = Column(String, nullable=False, default="")
    translation_uk = Column(String, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=WordStatus.NEW.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=True, index=True)
    interval_days = Column(Integer, nullable=False, default=0)
    ease = Column(Float, nullable=False, default=2.5)
    reps = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)
    right_count = Column(Integer, nullable=False, default=0)
    wrong_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    def to_word(self) -> WordProgress:
        return WordProgress(
            id=self.id,
            topic_id=self.topic_id,
            word_or_phrase=self.word_or_phrase,
            transcription=self.transcription,
            meaning_en=self.meaning_en,
            example_usage=self.example_usage,
            translation_uk=self.translation_uk,
            tags=list(self.tags or []),
            status=WordStatus(self.status),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            due_at=as_utc(self.due_at),
            interval_days=self.interval_days,
            ease=self.ease,
            reps=self.reps,
            lapses=self.lapses,
            right_count=self.right_count,
            wrong_count=self.wrong_count,
            skip_count=self.skip_count,
            last_reviewed_at=as_utc(self.last_reviewed_at),
        )

    def update_from(self, word: WordProgress) -> None:
        self.topic_id = word.topic_id
        self.word_or_phrase = word.word_or_phrase
        self.transcription = word.transcription
        self.meaning_en = word.meaning_en
        self.example_usage = word.example_usage
        self.translation_uk = word.translation_uk
        self.tags = list(word.tags)
        self.status = word.status.value
        self.created_at = word.created_at
        self.updated_at = word.updated_at
        self.due_at = word.due_at
        self.interval_days = word.interval_days
        self.ease = word.ease
        self.reps = word.reps
        self.lapses = word.lapses
        self.right_count = word.right_count
        self.wrong_count = word.wrong_count
        self.skip_count = word.skip_count
        self.last_reviewed_at = word.last_reviewed_at
