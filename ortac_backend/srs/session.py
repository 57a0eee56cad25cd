"""Quiz session orchestrator.

Coordinates the review scheduler, difficulty policy and scoring engine
for one quiz session. The session itself is in-memory and storage-free:
the service layer loads the learner's progress and review card for each
answer, persists the computed outcome, and only then records it here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from ortac_backend.srs.attempt import AttemptRecord, DifficultyTier
from ortac_backend.srs.badges import BadgeDefinition
from ortac_backend.srs.difficulty import DifficultyPolicy, DifficultyState
from ortac_backend.srs.errors import InvalidReference, InvalidSessionState
from ortac_backend.srs.levels import level_for_xp
from ortac_backend.srs.scoring import LearnerProgressState, ScoringEngine, ScoringResult
from ortac_backend.srs.sm2 import (
    DEFAULT_FAST_ANSWER_MS,
    Quality,
    ReviewCard,
    ReviewScheduler,
    quality_for_attempt,
)

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class SessionQuestion:
    """A question queued for the session, with its answer key."""

    question_id: int
    topic_id: int
    tier: DifficultyTier
    option_ids: tuple[int, ...]
    correct_option_ids: frozenset[int]
    from_review: bool = False  # queued because its review card was due


@dataclass(frozen=True)
class AnswerOutcome:
    """Everything one submitted answer produces, computed before any mutation."""

    question: SessionQuestion
    option_id: int
    attempt: AttemptRecord
    quality: Quality
    card_before: ReviewCard | None
    card: ReviewCard
    difficulty_before: DifficultyState
    difficulty_after: DifficultyState
    scoring: ScoringResult


@dataclass
class SessionStats:
    """Running totals for the session."""

    answered: int = 0
    correct: int = 0
    xp_earned: int = 0
    best_streak: int = 0
    total_time_ms: int = 0
    leveled_up: bool = False
    badges_unlocked: list[BadgeDefinition] = field(default_factory=list)
    tier_timeline: list[DifficultyTier] = field(default_factory=list)

    @property
    def average_time_ms(self) -> float:
        return self.total_time_ms / self.answered if self.answered else 0.0


@dataclass(frozen=True)
class SessionSummary:
    answered: int
    correct: int
    total_questions: int
    score_percent: int
    xp_earned: int
    tier_timeline: tuple[DifficultyTier, ...]
    badges_unlocked: tuple[BadgeDefinition, ...]
    final_streak_days: int
    best_in_session_streak: int
    average_time_ms: float
    final_level: int
    leveled_up: bool


@dataclass
class QuizSession:
    """Manages the state machine of one adaptive quiz session."""

    learner_id: int
    topic_id: int
    policy: DifficultyPolicy = field(default_factory=DifficultyPolicy)
    scheduler: ReviewScheduler = field(default_factory=ReviewScheduler)
    scoring: ScoringEngine = field(default_factory=ScoringEngine)
    fast_answer_ms: int = DEFAULT_FAST_ANSWER_MS
    session_id: str | None = None
    started_at: datetime | None = None
    status: SessionStatus = SessionStatus.NOT_STARTED
    difficulty: DifficultyState = field(default_factory=lambda: DifficultyState(DifficultyTier.MEDIUM))
    stats: SessionStats = field(default_factory=SessionStats)
    last_progress: LearnerProgressState | None = None
    _questions: list[SessionQuestion] = field(default_factory=list)
    _answered_ids: set[int] = field(default_factory=set)

    @property
    def questions(self) -> list[SessionQuestion]:
        return list(self._questions)

    @property
    def remaining(self) -> int:
        """Return the number of questions left to answer."""
        return len(self._questions) - len(self._answered_ids)

    @property
    def current_index(self) -> int:
        return len(self._answered_ids)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    def start(self, questions: list[SessionQuestion], seed: DifficultyState) -> None:
        """Move from NOT_STARTED to IN_PROGRESS with the queued questions."""
        self.require(SessionStatus.NOT_STARTED, "start")
        if not questions:
            raise InvalidReference(
                "No questions available for this topic",
                learner_id=self.learner_id,
                topic_id=self.topic_id,
            )
        self._questions = list(questions)
        self.difficulty = seed
        self.status = SessionStatus.IN_PROGRESS
        logger.info(
            "Started quiz for learner %d on topic %d: %d questions, seed tier %s",
            self.learner_id,
            self.topic_id,
            len(questions),
            seed.tier.value,
        )

    def next_question(self) -> SessionQuestion | None:
        """Pick the next question for the current target tier.

        The earliest unanswered question at the target tier wins; without
        one, the closest tier wins, then queue order.
        """
        if self.status != SessionStatus.IN_PROGRESS:
            return None
        target = self.difficulty.tier.rank
        best: SessionQuestion | None = None
        best_distance = 0
        for question in self._questions:
            if question.question_id in self._answered_ids:
                continue
            distance = abs(question.tier.rank - target)
            if best is None or distance < best_distance:
                best, best_distance = question, distance
            if distance == 0:
                break
        return best

    def current_question(self) -> SessionQuestion:
        """Return the question awaiting an answer, or raise InvalidSessionState."""
        self.require(SessionStatus.IN_PROGRESS, "submit an answer")
        question = self.next_question()
        if question is None:
            raise InvalidSessionState(
                "All questions in this session have been answered",
                status=self.status.value,
            )
        return question

    def evaluate(
        self,
        option_id: int,
        response_time_ms: int,
        progress: LearnerProgressState,
        card: ReviewCard | None,
        now: datetime,
        today: date,
        struggled: bool = False,
    ) -> AnswerOutcome:
        """Compute the outcome of answering the current question. Mutates nothing.

        Args:
            option_id: The chosen answer option.
            response_time_ms: Time from question shown to answer.
            progress: The learner's current progress state.
            card: The learner's review card for the current question, if any.
            now: Attempt time.
            today: The learner's local date.
            struggled: Explicit "I struggled" signal.

        Returns:
            AnswerOutcome to persist and then pass to ``record``.
        """
        question = self.current_question()
        if option_id not in question.option_ids:
            raise InvalidReference(
                "Option does not belong to the current question",
                option_id=option_id,
                question_id=question.question_id,
            )
        if progress.learner_id != self.learner_id:
            raise InvalidReference(
                "Progress state belongs to another learner",
                learner_id=progress.learner_id,
            )

        attempt = AttemptRecord(
            question_id=question.question_id,
            topic_id=question.topic_id,
            correct=option_id in question.correct_option_ids,
            response_time_ms=response_time_ms,
            difficulty_tier=self.difficulty.tier,
            timestamp=now,
            struggled=struggled,
        )
        quality = quality_for_attempt(attempt, self.fast_answer_ms)
        graded = self.scheduler.grade(
            card,
            quality,
            learner_id=self.learner_id,
            question_id=question.question_id,
            now=now,
        )
        difficulty_after = self.policy.transition(self.difficulty, attempt.correct)
        scoring = self.scoring.apply_attempt(
            progress,
            attempt,
            in_session_streak=difficulty_after.streak,
            today=today,
            review_card_graded=card is not None,
        )
        return AnswerOutcome(
            question=question,
            option_id=option_id,
            attempt=attempt,
            quality=quality,
            card_before=card,
            card=graded,
            difficulty_before=self.difficulty,
            difficulty_after=difficulty_after,
            scoring=scoring,
        )

    def record(self, outcome: AnswerOutcome) -> None:
        """Apply a persisted outcome to the session."""
        self.require(SessionStatus.IN_PROGRESS, "record an answer")
        if outcome.difficulty_before != self.difficulty or outcome.question.question_id in self._answered_ids:
            raise InvalidSessionState(
                "Outcome was computed against an older session state",
                question_id=outcome.question.question_id,
            )

        self._answered_ids.add(outcome.question.question_id)
        self.difficulty = outcome.difficulty_after
        self.last_progress = outcome.scoring.state

        s = self.stats
        s.answered += 1
        s.correct += 1 if outcome.attempt.correct else 0
        s.xp_earned += outcome.scoring.total_xp_gained
        s.best_streak = max(s.best_streak, outcome.difficulty_after.streak)
        s.total_time_ms += outcome.attempt.response_time_ms
        s.leveled_up = s.leveled_up or outcome.scoring.leveled_up
        s.badges_unlocked.extend(outcome.scoring.newly_unlocked)
        s.tier_timeline.append(outcome.attempt.difficulty_tier)

    def submit_answer(
        self,
        option_id: int,
        response_time_ms: int,
        progress: LearnerProgressState,
        card: ReviewCard | None,
        now: datetime,
        today: date,
        struggled: bool = False,
    ) -> AnswerOutcome:
        """Evaluate and immediately record an answer (for storage-free callers)."""
        outcome = self.evaluate(option_id, response_time_ms, progress, card, now, today, struggled)
        self.record(outcome)
        return outcome

    def record_completion_bonus(self, result: ScoringResult) -> None:
        """Fold the quiz-completion milestone into the running totals."""
        self.stats.xp_earned += result.total_xp_gained
        self.stats.leveled_up = self.stats.leveled_up or result.leveled_up
        self.stats.badges_unlocked.extend(result.newly_unlocked)
        self.last_progress = result.state

    @property
    def score_percent(self) -> int:
        if not self._questions:
            return 0
        return round(self.stats.correct * 100 / len(self._questions))

    def complete(self) -> SessionSummary:
        """Finish the session and return its summary."""
        self.require(SessionStatus.IN_PROGRESS, "complete")
        self.status = SessionStatus.COMPLETED
        summary = self.summary()
        logger.info(
            "Completed quiz for learner %d: %d/%d correct, +%d XP",
            self.learner_id,
            summary.correct,
            summary.total_questions,
            summary.xp_earned,
        )
        return summary

    def abandon(self) -> SessionSummary:
        """Stop the session. Answers already applied stay applied."""
        self.require(SessionStatus.IN_PROGRESS, "abandon")
        self.status = SessionStatus.ABANDONED
        logger.info(
            "Learner %d abandoned quiz on topic %d after %d answers",
            self.learner_id,
            self.topic_id,
            self.stats.answered,
        )
        return self.summary()

    def summary(self) -> SessionSummary:
        s = self.stats
        progress = self.last_progress
        return SessionSummary(
            answered=s.answered,
            correct=s.correct,
            total_questions=len(self._questions),
            score_percent=self.score_percent,
            xp_earned=s.xp_earned,
            tier_timeline=tuple(s.tier_timeline),
            badges_unlocked=tuple(s.badges_unlocked),
            final_streak_days=progress.current_streak_days if progress else 0,
            best_in_session_streak=s.best_streak,
            average_time_ms=s.average_time_ms,
            final_level=level_for_xp(progress.total_xp) if progress else 1,
            leveled_up=s.leveled_up,
        )

    def require(self, status: SessionStatus, action: str) -> None:
        """Raise InvalidSessionState unless the session is in ``status``."""
        if self.status != status:
            raise InvalidSessionState(
                f"Cannot {action} a session that is {self.status.value}",
                status=self.status.value,
            )
