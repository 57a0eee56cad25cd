"""SM-2 spaced repetition scheduler for review cards.

Based on the SuperMemo SM-2 algorithm, reduced to a four-step quality scale.
Reference: https://www.supermemo.com/en/archives1990-2015/english/ol/sm2

Key concepts:
- Ease factor (EF): per-card multiplier controlling how fast intervals grow.
- Interval: days until the card is due again.
- Repetitions: consecutive successful reviews since the last failure.
- Quality: 0=Fail, 1=Hard, 2=Good, 3=Easy
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import IntEnum

from ortac_backend.srs.attempt import AttemptRecord
from ortac_backend.srs.errors import InvalidReference

logger = logging.getLogger(__name__)


class Quality(IntEnum):
    """Recall quality of a single review."""

    FAIL = 0
    HARD = 1
    GOOD = 2
    EASY = 3


INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 5.0
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
FAIL_INTERVAL_DAYS = 1

# EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)) evaluated at q=3/4/5
# for Hard/Good/Easy. Fail uses a flat penalty instead of the q<3 branch.
DEFAULT_EASE_DELTAS: Mapping[Quality, float] = {
    Quality.FAIL: -0.20,
    Quality.HARD: -0.14,
    Quality.GOOD: 0.0,
    Quality.EASY: 0.10,
}

# Correct answers faster than this grade as Easy
DEFAULT_FAST_ANSWER_MS = 15000

DEFAULT_MASTERY_REPETITIONS = 6
DEFAULT_MASTERY_INTERVAL_DAYS = 180


@dataclass(frozen=True)
class ReviewCard:
    """The spaced repetition state for one (learner, question) pair."""

    learner_id: int
    question_id: int
    ease_factor: float
    interval_days: int
    repetitions: int
    due_at: datetime
    last_reviewed_at: datetime | None = None
    last_quality: Quality | None = None


def quality_for_attempt(
    attempt: AttemptRecord,
    fast_answer_ms: int = DEFAULT_FAST_ANSWER_MS,
) -> Quality:
    """Map an attempt's correctness, latency and struggle flag to a quality grade."""
    if not attempt.correct:
        return Quality.FAIL
    if attempt.struggled:
        return Quality.HARD
    if attempt.response_time_ms < fast_answer_ms:
        return Quality.EASY
    return Quality.GOOD


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() rounds half to even)."""
    return int(math.floor(value + 0.5))


class ReviewScheduler:
    """SM-2 scheduler with overridable tuning constants."""

    def __init__(
        self,
        ease_deltas: Mapping[Quality, float] | None = None,
        min_ease: float = MIN_EASE_FACTOR,
        max_ease: float = MAX_EASE_FACTOR,
        mastery_repetitions: int = DEFAULT_MASTERY_REPETITIONS,
        mastery_interval_days: int = DEFAULT_MASTERY_INTERVAL_DAYS,
    ) -> None:
        self.ease_deltas = dict(DEFAULT_EASE_DELTAS)
        if ease_deltas:
            self.ease_deltas.update(ease_deltas)
        self.min_ease = min_ease
        self.max_ease = max_ease
        self.mastery_repetitions = mastery_repetitions
        self.mastery_interval_days = mastery_interval_days

    def new_card(self, learner_id: int, question_id: int, now: datetime) -> ReviewCard:
        """Create the ungraded starting state for a question, due immediately."""
        return ReviewCard(
            learner_id=learner_id,
            question_id=question_id,
            ease_factor=INITIAL_EASE_FACTOR,
            interval_days=0,
            repetitions=0,
            due_at=now,
        )

    def grade(
        self,
        card: ReviewCard | None,
        quality: Quality,
        *,
        learner_id: int,
        question_id: int,
        now: datetime,
    ) -> ReviewCard:
        """Apply a quality grade and return the updated card.

        Args:
            card: Current card, or None if the question has never been graded.
            quality: Recall quality for this review.
            learner_id: Owner of the card.
            question_id: Question the card belongs to.
            now: Review time; the next due date is counted from here.

        Returns:
            A new ReviewCard. The input card is not modified.
        """
        if card is None:
            card = self.new_card(learner_id, question_id, now)
        elif card.learner_id != learner_id or card.question_id != question_id:
            raise InvalidReference(
                "Card does not belong to this learner/question",
                learner_id=learner_id,
                question_id=question_id,
            )

        quality = Quality(quality)
        ease = card.ease_factor + self.ease_deltas[quality]
        ease = round(max(self.min_ease, min(self.max_ease, ease)), 4)

        if quality == Quality.FAIL:
            repetitions = 0
            interval = FAIL_INTERVAL_DAYS
        else:
            repetitions = card.repetitions + 1
            if repetitions == 1:
                interval = FIRST_INTERVAL_DAYS
            elif repetitions == 2:
                interval = SECOND_INTERVAL_DAYS
            else:
                interval = round_half_up(card.interval_days * ease)

        logger.debug(
            "Graded q%d for learner %d: %s -> EF %.2f, %d reps, %d days",
            question_id,
            learner_id,
            quality.name,
            ease,
            repetitions,
            interval,
        )
        return replace(
            card,
            ease_factor=ease,
            interval_days=interval,
            repetitions=repetitions,
            due_at=now + timedelta(days=interval),
            last_reviewed_at=now,
            last_quality=quality,
        )

    def is_due(self, card: ReviewCard, now: datetime) -> bool:
        return card.due_at <= now

    def is_mastered(self, card: ReviewCard) -> bool:
        """Return True once a card has been recalled often enough to leave the due pool."""
        return (
            card.repetitions >= self.mastery_repetitions
            and card.interval_days >= self.mastery_interval_days
        )

    def due_cards(
        self,
        cards: Iterable[ReviewCard],
        now: datetime,
        limit: int | None = None,
        include_mastered: bool = False,
    ) -> list[ReviewCard]:
        """Return due cards, most overdue first, ties broken by question id."""
        if limit is not None and limit < 0:
            raise InvalidReference("Due-card limit must not be negative", limit=limit)
        due = [
            c
            for c in cards
            if self.is_due(c, now) and (include_mastered or not self.is_mastered(c))
        ]
        due.sort(key=lambda c: (c.due_at, c.question_id))
        return due if limit is None else due[:limit]
