"""Exceptions raised by the scheduling core."""


class VocabBuilderError(Exception):
    """Base class for all vocabulary builder errors."""


class PreconditionError(VocabBuilderError, ValueError):
    """A command was issued in a state that does not allow it.

    Raised before any state is touched, so the caller can simply report it.
    """


class SessionFinishedError(PreconditionError):
    """The session already ended by completion or timeout."""


class NoEligibleItemsError(VocabBuilderError):
    """No word matched the session filters, so no session was started."""


class ImportValidationError(VocabBuilderError, ValueError):
    """An import snapshot was rejected before the store was modified."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
