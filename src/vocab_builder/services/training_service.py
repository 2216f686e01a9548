"""Service for starting and replacing review sessions."""
import logging
import random
from datetime import datetime
from typing import Callable, Optional

from vocab_builder import monitoring
from vocab_builder.errors import NoEligibleItemsError
from vocab_builder.models.word_models import SessionConfig, utc_now
from vocab_builder.services.session_builder import build_session
from vocab_builder.services.session_runtime import SessionRuntime
from vocab_builder.services.word_store import WordStore

logger = logging.getLogger(__name__)


class TrainingService:
    """Keeps the learner's single active session."""

    def __init__(self, store: WordStore, rng: Optional[random.Random] = None):
        """Initialize the service with a word store and an optional random source."""
        self.store = store
        self.rng = rng or random.Random()
        self.active: Optional[SessionRuntime] = None

    def start_session(
        self,
        config: SessionConfig,
        now: Optional[datetime] = None,
        on_timeout: Optional[Callable[[SessionRuntime], None]] = None,
    ) -> SessionRuntime:
        """Build a queue and start a session on it, replacing the active one.

        Raises:
            NoEligibleItemsError: nothing matched; the active session is kept.
        """
        now = now or utc_now()
        words = self.store.get_all_words()
        queue = build_session(words, config, now, self.rng)
        if not queue:
            monitoring.empty_selections.inc()
            raise NoEligibleItemsError("No words match the current filters")

        if self.active is not None:
            logger.info("Replacing the active session")
            self.active.dispose(now)
            self.active = None

        queued_ids = {item.word_id for item in queue}
        runtime = SessionRuntime(
            queue,
            [word for word in words if word.id in queued_ids],
            persist=self.store.put_word,
            now=now,
            rng=self.rng,
            on_timeout=on_timeout,
        )
        runtime.arm_timer(now)
        self.active = runtime
        monitoring.sessions_started.labels(mode=config.mode.value).inc()
        return runtime

    def end_session(self, now: Optional[datetime] = None) -> None:
        """Close the active session, if any, and retry its unsaved words once more."""
        if self.active is None:
            return
        self.active.dispose(now)
        still_pending = self.active.flush_pending()
        if still_pending:
            logger.warning(f"{still_pending} words could not be saved when the session ended")
        self.active = None
