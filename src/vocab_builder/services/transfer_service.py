"""Import and export of the whole collection as a JSON snapshot."""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from vocab_builder import monitoring
from vocab_builder.config import SCHEMA_VERSION, settings
from vocab_builder.errors import ImportValidationError
from vocab_builder.models.word_models import Topic, WordProgress, utc_now
from vocab_builder.services.word_store import WordStore

logger = logging.getLogger(__name__)


class ImportPolicy(Enum):
    """How imported records combine with the stored ones."""
    REPLACE = "replace"  # Wipe the store, then write the snapshot verbatim
    MERGE = "merge"  # Add records whose ids are not stored yet


@dataclass
class Snapshot:
    """A validated snapshot document."""
    schema_version: int
    topics: List[Topic]
    words: List[WordProgress]


@dataclass
class ImportResult:
    """Summary of an applied import."""
    policy: ImportPolicy
    topics_written: int
    words_written: int
    topics_total: int
    words_total: int


def export_snapshot(store: WordStore) -> Dict[str, Any]:
    """Current store contents in snapshot form."""
    topics = store.get_all_topics()
    words = store.get_all_words()
    logger.info(f"Exporting {len(topics)} topics and {len(words)} words")
    return {
        "schemaVersion": SCHEMA_VERSION,
        "topics": [topic.to_dict() for topic in topics],
        "words": [word.to_dict() for word in words],
    }


def export_json(store: WordStore) -> str:
    return json.dumps(export_snapshot(store), indent=2, ensure_ascii=False)


def export_to_file(store: WordStore, path: Optional[Path] = None, now: Optional[datetime] = None) -> Path:
    """Write a snapshot file, named after the export time unless a path is given."""
    if path is None:
        stamp = int((now or utc_now()).timestamp() * 1000)
        path = settings.paths.exports_dir / f"vocab-builder-{stamp}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_json(store), encoding="utf-8")
    logger.info(f"Snapshot written to {path}")
    return path


def parse_snapshot(document: Union[str, bytes, Dict[str, Any]]) -> Snapshot:
    """Validate a snapshot document without touching the store.

    Raises:
        ImportValidationError: with the reason the document was rejected.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise ImportValidationError(f"Snapshot is not valid JSON: {e.msg}") from e
        except UnicodeDecodeError as e:
            raise ImportValidationError(f"Snapshot is not valid UTF-8: {e.reason} at byte {e.start}") from e

    if not isinstance(document, dict):
        raise ImportValidationError("Invalid schema: snapshot must be an object")
    if not isinstance(document.get("topics"), list) or not isinstance(document.get("words"), list):
        raise ImportValidationError("Invalid schema: topics and words must be lists")

    version = document.get("schemaVersion")
    if isinstance(version, bool) or version != SCHEMA_VERSION:
        raise ImportValidationError(
            f"Schema version mismatch: got {version!r}, only v{SCHEMA_VERSION} is supported"
        )

    topics = []
    for position, raw in enumerate(document["topics"]):
        try:
            topics.append(Topic.from_dict(raw))
        except (ValueError, TypeError) as e:
            raise ImportValidationError(f"Invalid topic at position {position}: {e}") from e

    words = []
    for position, raw in enumerate(document["words"]):
        try:
            words.append(WordProgress.from_dict(raw))
        except (ValueError, TypeError) as e:
            raise ImportValidationError(f"Invalid word at position {position}: {e}") from e

    return Snapshot(schema_version=version, topics=topics, words=words)


def import_snapshot(
    store: WordStore,
    document: Union[str, bytes, Dict[str, Any]],
    policy: ImportPolicy = ImportPolicy.MERGE,
) -> ImportResult:
    """Validate a snapshot and apply it to the store with the given policy."""
    policy = ImportPolicy(policy)
    try:
        snapshot = parse_snapshot(document)
    except ImportValidationError as e:
        monitoring.imports.labels(policy=policy.value, result="rejected").inc()
        logger.warning(f"Import rejected: {e.reason}")
        raise

    if policy is ImportPolicy.REPLACE:
        store.clear_all()
        for topic in snapshot.topics:
            store.put_topic(topic)
        for word in snapshot.words:
            store.put_word(word)
        result = ImportResult(
            policy=policy,
            topics_written=len(snapshot.topics),
            words_written=len(snapshot.words),
            topics_total=len(store.get_all_topics()),
            words_total=len(store.get_all_words()),
        )
    else:
        existing_topics = {topic.topic_id for topic in store.get_all_topics()}
        existing_words = {word.id for word in store.get_all_words()}

        new_topics = [t for t in _unique(snapshot.topics, "topic_id") if t.topic_id not in existing_topics]
        new_words = [w for w in _unique(snapshot.words, "id") if w.id not in existing_words]
        for topic in new_topics:
            store.put_topic(topic)
        for word in new_words:
            store.put_word(word)
        result = ImportResult(
            policy=policy,
            topics_written=len(new_topics),
            words_written=len(new_words),
            topics_total=len(existing_topics) + len(new_topics),
            words_total=len(existing_words) + len(new_words),
        )

    monitoring.imports.labels(policy=policy.value, result="applied").inc()
    logger.info(
        f"Imported ({policy.value}): {result.topics_written} topics and {result.words_written} words written"
    )
    return result


def _unique(records: list, key: str) -> list:
    """Last record per id wins, in first-seen order."""
    by_id: Dict[str, Any] = {}
    for record in records:
        by_id[getattr(record, key)] = record
    return list(by_id.values())
