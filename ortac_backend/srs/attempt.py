"""The attempt record shared by the scheduler, difficulty policy and scoring."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ortac_backend.srs.errors import InvalidReference


class DifficultyTier(str, Enum):
    """Target challenge level of a question."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def step_up(self) -> "DifficultyTier":
        return _TIER_ORDER[min(self.rank + 1, len(_TIER_ORDER) - 1)]

    def step_down(self) -> "DifficultyTier":
        return _TIER_ORDER[max(self.rank - 1, 0)]

    @classmethod
    def parse(cls, value: str | None) -> "DifficultyTier":
        """Parse a stored tier name; questions without one count as medium."""
        if not value:
            return cls.MEDIUM
        try:
            return cls(value.lower())
        except ValueError:
            raise InvalidReference(f"Unknown difficulty tier: {value!r}", tier=value) from None


_TIER_ORDER = (DifficultyTier.EASY, DifficultyTier.MEDIUM, DifficultyTier.HARD)


@dataclass(frozen=True)
class AttemptRecord:
    """One answered question. Immutable once created."""

    question_id: int
    topic_id: int
    correct: bool
    response_time_ms: int
    difficulty_tier: DifficultyTier
    timestamp: datetime
    struggled: bool = False  # explicit "I struggled" signal from the UI

    def __post_init__(self) -> None:
        if self.response_time_ms < 0:
            raise InvalidReference(
                "response_time_ms must be >= 0",
                question_id=self.question_id,
                response_time_ms=self.response_time_ms,
            )
