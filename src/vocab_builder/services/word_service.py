"""Service for managing topics and words in the collection."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from vocab_builder.errors import PreconditionError
from vocab_builder.models.word_models import Topic, WordProgress, new_id, utc_now
from vocab_builder.services.word_store import WordStore

logger = logging.getLogger(__name__)


def add_tag(tags: List[str], value: str) -> List[str]:
    """Return ``tags`` with ``value`` appended, unless blank or already present."""
    clean = value.strip()
    if not clean or clean in tags:
        return tags
    return [*tags, clean]


class WordService:
    """Service for managing topics and words in the collection."""

    def __init__(self, store: WordStore):
        """Initialize the service with a word store."""
        self.store = store

    def create_topic(self, name: str, now: Optional[datetime] = None) -> Topic:
        """Create and store a new topic."""
        clean = name.strip()
        if not clean:
            raise PreconditionError("Topic name is required")
        topic = Topic(topic_id=new_id(), name=clean, created_at=now or utc_now())
        self.store.put_topic(topic)
        logger.info(f"Created topic {topic.topic_id} ({topic.name})")
        return topic

    def create_word(self, topic_id: str, now: Optional[datetime] = None) -> WordProgress:
        """Blank draft of a new word in a topic; not stored until saved."""
        now = now or utc_now()
        return WordProgress(id=new_id(), topic_id=topic_id, created_at=now, updated_at=now)

    def save_word(self, word: WordProgress, now: Optional[datetime] = None) -> WordProgress:
        """Store a new or edited word."""
        if not word.topic_id:
            raise PreconditionError("Word must belong to a topic")
        if not word.word_or_phrase.strip() or not word.meaning_en.strip():
            raise PreconditionError("Word and meaning are required")
        saved = replace(word, tags=list(word.tags), updated_at=now or utc_now())
        self.store.put_word(saved)
        logger.info(f"Saved word {saved.id} ({saved.word_or_phrase})")
        return saved

    def add_tag(self, word: WordProgress, value: str) -> WordProgress:
        return replace(word, tags=add_tag(word.tags, value))

    def remove_tag(self, word: WordProgress, tag: str) -> WordProgress:
        return replace(word, tags=[t for t in word.tags if t != tag])

    def all_tags(self) -> List[str]:
        """Every tag used in the collection, sorted."""
        return sorted({tag for word in self.store.get_all_words() for tag in word.tags})

    def search_words(self, query: str, topic_id: str = "all", tags: Optional[List[str]] = None) -> List[WordProgress]:
        """Words matching a topic, any of the tags and a free-text query."""
        needle = query.strip().lower()
        results = []
        for word in self.store.get_all_words():
            if topic_id != "all" and word.topic_id != topic_id:
                continue
            if tags and not any(tag in word.tags for tag in tags):
                continue
            if needle:
                haystack = " ".join(
                    [word.word_or_phrase, word.meaning_en, word.translation_uk, " ".join(word.tags)]
                ).lower()
                if needle not in haystack:
                    continue
            results.append(word)
        return results

    def delete_word(self, word_id: str) -> bool:
        return self.store.delete_word(word_id)

    def delete_topic(self, topic_id: str) -> int:
        """Delete a topic together with all of its words."""
        return self.store.delete_topic(topic_id)
