"""Persistent store for topics and words."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from vocab_builder.models.models import TopicRecord, WordRecord
from vocab_builder.models.word_models import Topic, WordProgress

logger = logging.getLogger(__name__)


class WordStore:
    """Key-value style store of topics and words backed by SQLAlchemy.

    Every write is an upsert keyed by id and is committed on its own; no
    operation spans several words in one transaction except the topic
    cascade and the full wipe.
    """

    def __init__(self, db: Session):
        """Initialize the store with a database session."""
        self.db = db

    def get_all_topics(self) -> List[Topic]:
        """Get all topics."""
        return [record.to_topic() for record in self.db.query(TopicRecord).all()]

    def get_all_words(self) -> List[WordProgress]:
        """Get all words in insertion order."""
        records = self.db.query(WordRecord).order_by(WordRecord.created_at, WordRecord.id).all()
        return [record.to_word() for record in records]

    def get_word(self, word_id: str) -> Optional[WordProgress]:
        """Get a word by its ID."""
        record = self.db.get(WordRecord, word_id)
        return record.to_word() if record else None

    def put_topic(self, topic: Topic) -> None:
        """Insert or update a topic."""
        record = self.db.get(TopicRecord, topic.topic_id)
        if record is None:
            record = TopicRecord(topic_id=topic.topic_id)
            self.db.add(record)
        record.update_from(topic)
        self._commit()

    def put_word(self, word: WordProgress) -> None:
        """Insert or update a word."""
        record = self.db.get(WordRecord, word.id)
        if record is None:
            record = WordRecord(id=word.id)
            self.db.add(record)
        record.update_from(word)
        self._commit()
        logger.debug(f"Stored word {word.id} (status {word.status.value}, due {word.due_at})")

    def delete_word(self, word_id: str) -> bool:
        """Delete a word, returning whether it existed."""
        record = self.db.get(WordRecord, word_id)
        if not record:
            return False
        self.db.delete(record)
        self._commit()
        return True

    def delete_topic(self, topic_id: str) -> int:
        """Delete a topic and every word in it, returning the number of words removed."""
        deleted = (
            self.db.query(WordRecord)
            .filter(WordRecord.topic_id == topic_id)
            .delete()
        )
        self.db.query(TopicRecord).filter(TopicRecord.topic_id == topic_id).delete()
        self._commit()
        logger.info(f"Deleted topic {topic_id} with {deleted} words")
        return deleted

    def clear_all(self) -> None:
        """Delete all topics and words."""
        self.db.query(WordRecord).delete()
        self.db.query(TopicRecord).delete()
        self._commit()
        logger.info("Cleared all topics and words")

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
