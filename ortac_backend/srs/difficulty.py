"""Adaptive difficulty policy for quiz sessions.

A small Moore machine over Easy/Medium/Hard. The next tier depends only on
the current tier, whether the last answer was correct, and the running
in-session streak of correct answers.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ortac_backend.srs.attempt import DifficultyTier

# A seed policy maps historical topic accuracy (0-1, or None without enough
# history) to the tier the first question is asked at.
SeedPolicy = Callable[[float | None], DifficultyTier]

# Correct answers needed in a row at Medium before moving up to Hard
DEFAULT_PROMOTION_STREAK = 2

DEFAULT_SEED_THRESHOLDS: Sequence[tuple[float, DifficultyTier]] = (
    (0.85, DifficultyTier.HARD),
    (0.75, DifficultyTier.MEDIUM),
)


@dataclass(frozen=True)
class DifficultyState:
    """Current target tier and in-session correct streak."""

    tier: DifficultyTier
    streak: int = 0


class ThresholdSeed:
    """Seed tier from a descending table of (minimum accuracy, tier) rows."""

    def __init__(
        self,
        thresholds: Sequence[tuple[float, DifficultyTier]] = DEFAULT_SEED_THRESHOLDS,
        fallback: DifficultyTier = DifficultyTier.EASY,
        no_history: DifficultyTier = DifficultyTier.MEDIUM,
    ) -> None:
        self.thresholds = sorted(thresholds, key=lambda row: row[0], reverse=True)
        self.fallback = fallback
        self.no_history = no_history

    def __call__(self, accuracy: float | None) -> DifficultyTier:
        if accuracy is None:
            return self.no_history
        for minimum, tier in self.thresholds:
            if accuracy >= minimum:
                return tier
        return self.fallback


class DifficultyPolicy:
    """Selects the target tier for the next question."""

    def __init__(
        self,
        seed_policy: SeedPolicy | None = None,
        promotion_streak: int = DEFAULT_PROMOTION_STREAK,
    ) -> None:
        self.seed_policy = seed_policy or ThresholdSeed()
        self.promotion_streak = promotion_streak

    def seed(self, accuracy: float | None) -> DifficultyState:
        """Return the starting state for a session from topic accuracy."""
        return DifficultyState(tier=self.seed_policy(accuracy), streak=0)

    def transition(self, state: DifficultyState, correct: bool) -> DifficultyState:
        """Return the state after one answer.

        ``state.streak`` is the run of correct answers before this one, so a
        Medium learner moves up on the third correct answer in a row.
        """
        if not correct:
            return DifficultyState(tier=state.tier.step_down(), streak=0)

        tier = state.tier
        if tier == DifficultyTier.EASY:
            tier = DifficultyTier.MEDIUM
        elif tier == DifficultyTier.MEDIUM and state.streak >= self.promotion_streak:
            tier = DifficultyTier.HARD
        return DifficultyState(tier=tier, streak=state.streak + 1)
