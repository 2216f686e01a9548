"""Test configuration."""
import os
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="vocab_builder_test_"))
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vocab_builder.config import ensure_directories
from vocab_builder.models.base import Base
from vocab_builder.models import models  # noqa: F401
from vocab_builder.models.word_models import WordProgress, WordStatus, new_id
from vocab_builder.services.word_store import WordStore

fake = Faker()


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh in-memory database session for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db: Session) -> WordStore:
    """Create a word store instance."""
    return WordStore(db)


@pytest.fixture
def now() -> datetime:
    """A fixed review instant."""
    return datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_word() -> Callable[..., WordProgress]:
    """Factory for words with fake content."""

    def _make_word(**overrides) -> WordProgress:
        created = overrides.pop("created_at", datetime(2024, 1, 1, tzinfo=UTC))
        fields = dict(
            id=new_id(),
            topic_id="topic-1",
            word_or_phrase=fake.word(),
            transcription=fake.word(),
            meaning_en=fake.sentence(),
            example_usage=fake.sentence(),
            translation_uk=fake.word(),
            tags=[],
            status=WordStatus.NEW,
            created_at=created,
            updated_at=created,
        )
        fields.update(overrides)
        return WordProgress(**fields)

    return _make_word
