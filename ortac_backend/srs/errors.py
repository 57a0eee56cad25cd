"""Error kinds raised by the adaptive learning engine.

All of them are recoverable by the caller. Operations validate before they
mutate, so a raised error never leaves partially applied state behind.
"""

from typing import Any


class EngineError(Exception):
    """Base class carrying a machine-readable kind and a structured payload."""

    kind = "engine_error"

    def __init__(self, detail: str, **payload: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.payload = payload

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a JSON-friendly dict."""
        return {"error": self.kind, "detail": self.detail, **self.payload}


class InvalidReference(EngineError):
    """Unknown learner, topic, question or option, or otherwise malformed input."""

    kind = "invalid_reference"


class InvalidSessionState(EngineError):
    """An operation was called outside its valid session state."""

    kind = "invalid_session_state"


class PersistenceConflict(EngineError):
    """A concurrent update to the same learner's state won the race.

    Retry the operation with freshly loaded state.
    """

    kind = "persistence_conflict"
