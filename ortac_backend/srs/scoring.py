"""Scoring and progression: XP, levels, calendar streaks and badge unlocks.

Every function here is a pure state transition: it takes a
LearnerProgressState and returns a new one. Callers own persistence.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum

from ortac_backend.srs.attempt import AttemptRecord, DifficultyTier
from ortac_backend.srs.badges import DEFAULT_BADGES, BadgeDefinition, evaluation_order, requirement_met
from ortac_backend.srs.levels import level_for_xp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XPRules:
    """XP awarded per attempt and per platform milestone."""

    base_by_tier: dict[DifficultyTier, int] = field(
        default_factory=lambda: {
            DifficultyTier.EASY: 10,
            DifficultyTier.MEDIUM: 15,
            DifficultyTier.HARD: 20,
        }
    )
    speed_bonus: int = 5
    speed_bonus_under_ms: int = 15000
    # Awarded only on the attempt whose streak equals the key
    streak_bonuses: dict[int, int] = field(default_factory=lambda: {3: 10, 5: 20, 10: 50})
    chapter_complete: int = 100
    quiz_pass: int = 50
    quiz_perfect: int = 100
    certificate: int = 0


XP_RULES = XPRules()


class Milestone(str, Enum):
    """Progress events reported by the surrounding platform."""

    CHAPTER_COMPLETED = "chapter_completed"
    QUIZ_PASSED = "quiz_passed"
    QUIZ_PERFECT = "quiz_perfect"
    CERTIFICATE_EARNED = "certificate_earned"


@dataclass(frozen=True)
class LearnerProgressState:
    """Durable per-learner progression state."""

    learner_id: int
    total_xp: int = 0
    level: int = 1
    current_streak_days: int = 0
    longest_streak_days: int = 0
    last_activity_date: date | None = None
    unlocked_badge_ids: frozenset[str] = frozenset()
    chapters_completed: int = 0
    quizzes_passed: int = 0
    certificates_earned: int = 0
    review_cards_reviewed: int = 0
    correct_answers: int = 0


@dataclass(frozen=True)
class ScoringResult:
    state: LearnerProgressState
    xp_delta: int  # XP earned by the attempt or milestone itself
    badge_xp: int  # XP from badges unlocked by it
    level_before: int
    leveled_up: bool
    newly_unlocked: tuple[BadgeDefinition, ...] = ()

    @property
    def total_xp_gained(self) -> int:
        return self.xp_delta + self.badge_xp


def attempt_xp(
    attempt: AttemptRecord,
    in_session_streak: int,
    rules: XPRules = XP_RULES,
) -> int:
    """Return the XP for one attempt: base + speed bonus + streak threshold bonus."""
    if not attempt.correct:
        return 0
    xp = rules.base_by_tier[attempt.difficulty_tier]
    if attempt.response_time_ms < rules.speed_bonus_under_ms:
        xp += rules.speed_bonus
    xp += rules.streak_bonuses.get(in_session_streak, 0)
    return xp


def advance_streak(state: LearnerProgressState, today: date) -> LearnerProgressState:
    """Update the calendar-day activity streak for activity on ``today``."""
    last = state.last_activity_date
    current = state.current_streak_days
    if last is None:
        current = 1
    else:
        gap = (today - last).days
        if gap == 1:
            current += 1
        elif gap > 1:
            current = 1
        else:
            # Same day, or a clock/timezone change put today before the last activity
            today = last
    return replace(
        state,
        current_streak_days=current,
        longest_streak_days=max(state.longest_streak_days, current),
        last_activity_date=today,
    )


class ScoringEngine:
    """Turns attempts and milestones into XP, level, streak and badge changes."""

    def __init__(
        self,
        rules: XPRules = XP_RULES,
        catalog: Sequence[BadgeDefinition] = DEFAULT_BADGES,
    ) -> None:
        self.rules = rules
        self.catalog = evaluation_order(catalog)

    def apply_attempt(
        self,
        state: LearnerProgressState,
        attempt: AttemptRecord,
        in_session_streak: int,
        today: date,
        review_card_graded: bool = False,
    ) -> ScoringResult:
        """Score one answered question.

        Args:
            state: Progress state before the attempt.
            attempt: The answered question.
            in_session_streak: Correct-in-a-row count including this attempt.
            today: The learner's local date, for the calendar streak.
            review_card_graded: Whether this attempt re-graded an existing review card.

        Returns:
            ScoringResult with the new state, XP delta, level-up flag and new badges.
        """
        xp_delta = attempt_xp(attempt, in_session_streak, self.rules)
        logger.debug(
            "Attempt q%d (%s, %s, %dms, streak %d) -> +%d XP",
            attempt.question_id,
            attempt.difficulty_tier.value,
            "correct" if attempt.correct else "incorrect",
            attempt.response_time_ms,
            in_session_streak,
            xp_delta,
        )
        counters = replace(
            state,
            correct_answers=state.correct_answers + (1 if attempt.correct else 0),
            review_cards_reviewed=state.review_cards_reviewed + (1 if review_card_graded else 0),
        )
        return self._finish(state, counters, xp_delta, today)

    def apply_review(
        self,
        state: LearnerProgressState,
        today: date,
    ) -> ScoringResult:
        """Count a standalone review-mode grading (no XP of its own)."""
        counters = replace(state, review_cards_reviewed=state.review_cards_reviewed + 1)
        return self._finish(state, counters, 0, today)

    def apply_milestone(
        self,
        state: LearnerProgressState,
        milestone: Milestone,
        today: date,
    ) -> ScoringResult:
        """Apply a chapter, quiz or certificate milestone."""
        if milestone == Milestone.CHAPTER_COMPLETED:
            xp_delta = self.rules.chapter_complete
            counters = replace(state, chapters_completed=state.chapters_completed + 1)
        elif milestone in (Milestone.QUIZ_PASSED, Milestone.QUIZ_PERFECT):
            xp_delta = (
                self.rules.quiz_perfect if milestone == Milestone.QUIZ_PERFECT else self.rules.quiz_pass
            )
            counters = replace(state, quizzes_passed=state.quizzes_passed + 1)
        else:
            xp_delta = self.rules.certificate
            counters = replace(state, certificates_earned=state.certificates_earned + 1)
        logger.debug("Milestone %s for learner %d -> +%d XP", milestone.value, state.learner_id, xp_delta)
        return self._finish(state, counters, xp_delta, today)

    def unlock_badges(
        self, state: LearnerProgressState
    ) -> tuple[LearnerProgressState, tuple[BadgeDefinition, ...], int]:
        """Unlock every badge whose requirement the state now meets.

        Rewards are added to total_xp as badges unlock, and evaluation repeats
        until nothing new unlocks, since a reward can satisfy an XP or level badge.
        """
        unlocked: list[BadgeDefinition] = []
        badge_xp = 0
        changed = True
        while changed:
            changed = False
            for badge in self.catalog:
                if badge.id in state.unlocked_badge_ids:
                    continue
                if not requirement_met(badge.requirement, state):
                    continue
                total_xp = state.total_xp + badge.xp_reward
                state = replace(
                    state,
                    unlocked_badge_ids=state.unlocked_badge_ids | {badge.id},
                    total_xp=total_xp,
                    level=level_for_xp(total_xp),
                )
                unlocked.append(badge)
                badge_xp += badge.xp_reward
                changed = True
        return state, tuple(unlocked), badge_xp

    def _finish(
        self,
        before: LearnerProgressState,
        state: LearnerProgressState,
        xp_delta: int,
        today: date,
    ) -> ScoringResult:
        total_xp = state.total_xp + xp_delta
        state = replace(state, total_xp=total_xp, level=level_for_xp(total_xp))
        state = advance_streak(state, today)
        state, newly_unlocked, badge_xp = self.unlock_badges(state)

        level_before = level_for_xp(before.total_xp)
        leveled_up = state.level > level_before
        if leveled_up:
            logger.info("Learner %d reached level %d", state.learner_id, state.level)
        for badge in newly_unlocked:
            logger.info("Learner %d unlocked badge %s", state.learner_id, badge.id)

        return ScoringResult(
            state=state,
            xp_delta=xp_delta,
            badge_xp=badge_xp,
            level_before=level_before,
            leveled_up=leveled_up,
            newly_unlocked=newly_unlocked,
        )
