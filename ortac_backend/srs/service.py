"""Async entry points for quizzes, review mode and progress.

Each operation that changes learner state runs as one unit of work under
the learner's lock: load fresh rows, compute with the pure engines, stage
the results, commit. In-memory session state is only touched after the
commit succeeded.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ortac_backend.config import settings, utcnow
from ortac_backend.models.attempt_log import AttemptLog
from ortac_backend.models.progress import LearnerProgress
from ortac_backend.srs import repository
from ortac_backend.srs.difficulty import DifficultyPolicy
from ortac_backend.srs.errors import InvalidReference, PersistenceConflict
from ortac_backend.srs.levels import LevelProgress, level_progress
from ortac_backend.srs.locks import learner_locks
from ortac_backend.srs.queue import QuestionOrdering, build_queue, review_priority_order
from ortac_backend.srs.scoring import LearnerProgressState, Milestone, ScoringEngine, ScoringResult
from ortac_backend.srs.session import AnswerOutcome, QuizSession, SessionStatus, SessionSummary
from ortac_backend.srs.sm2 import Quality, ReviewCard, ReviewScheduler

logger = logging.getLogger(__name__)

# Re-run a unit of work that lost a race, with freshly loaded state
retry_on_conflict = retry(
    retry=retry_if_exception_type(PersistenceConflict),
    stop=stop_after_attempt(settings.conflict_retries),
    wait=wait_exponential(multiplier=0.05, max=1),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


@dataclass(frozen=True)
class ReviewResult:
    card: ReviewCard
    scoring: ScoringResult


def default_scheduler() -> ReviewScheduler:
    return ReviewScheduler(
        mastery_repetitions=settings.mastery_repetitions,
        mastery_interval_days=settings.mastery_interval_days,
    )


async def start_quiz(
    db: AsyncSession,
    learner_id: int,
    topic_id: int,
    size: int | None = None,
    now: datetime | None = None,
    policy: DifficultyPolicy | None = None,
    ordering: QuestionOrdering = review_priority_order,
) -> QuizSession:
    """Create and start an adaptive quiz for a learner on one topic.

    The starting tier is seeded from the learner's recent accuracy on the
    topic; due review cards for the topic are queued first.
    """
    now = now or utcnow()
    if size is not None and size < 1:
        raise InvalidReference("Session size must be positive", size=size)

    async with repository.unit_of_work(db, learner_id):
        await repository.get_learner(db, learner_id)
        await repository.get_topic(db, topic_id)
        _, progress = await repository.load_progress(db, learner_id)
        accuracy = await repository.topic_accuracy(db, learner_id, topic_id)
        queue = await build_queue(db, learner_id, topic_id, size=size, now=now, ordering=ordering)

    quiz = QuizSession(
        learner_id=learner_id,
        topic_id=topic_id,
        policy=policy or DifficultyPolicy(),
        scheduler=default_scheduler(),
        fast_answer_ms=settings.fast_answer_ms,
        session_id=str(uuid.uuid4()),
        started_at=now,
        last_progress=progress,
    )
    quiz.start(queue.ordered(), quiz.policy.seed(accuracy))
    logger.debug("Topic %d accuracy for learner %d: %s", topic_id, learner_id, accuracy)
    return quiz


async def submit_answer(
    db: AsyncSession,
    quiz: QuizSession,
    option_id: int,
    response_time_ms: int,
    struggled: bool = False,
    now: datetime | None = None,
) -> AnswerOutcome:
    """Grade the current question, persist the outcome, then advance the quiz."""
    now = now or utcnow()
    async with learner_locks.hold(quiz.learner_id):
        async with repository.unit_of_work(db, quiz.learner_id):
            question = quiz.current_question()
            learner = await repository.get_learner(db, quiz.learner_id)
            progress_row, progress = await repository.load_progress(db, quiz.learner_id)
            card_row, card = await repository.load_card(db, quiz.learner_id, question.question_id)

            outcome = quiz.evaluate(
                option_id,
                response_time_ms,
                progress,
                card,
                now=now,
                today=repository.learner_today(learner, now),
                struggled=struggled,
            )

            repository.save_card(db, card_row, outcome.card)
            repository.save_progress(db, progress_row, progress, outcome.scoring.state, now)
            db.add(
                AttemptLog(
                    learner_id=quiz.learner_id,
                    question_id=question.question_id,
                    topic_id=question.topic_id,
                    session_id=quiz.session_id,
                    correct=outcome.attempt.correct,
                    response_time_ms=outcome.attempt.response_time_ms,
                    difficulty_tier=outcome.attempt.difficulty_tier.value,
                    quality=int(outcome.quality),
                    xp_delta=outcome.scoring.total_xp_gained,
                    ease_after=outcome.card.ease_factor,
                    interval_after=outcome.card.interval_days,
                    attempted_at=now,
                )
            )

        quiz.record(outcome)

    logger.debug(
        "Learner %d answered q%d: %s, quality %s, tier %s -> %s",
        quiz.learner_id,
        question.question_id,
        "correct" if outcome.attempt.correct else "incorrect",
        outcome.quality.name,
        outcome.difficulty_before.tier.value,
        outcome.difficulty_after.tier.value,
    )
    return outcome


async def complete_quiz(
    db: AsyncSession,
    quiz: QuizSession,
    now: datetime | None = None,
) -> SessionSummary:
    """Complete the quiz, awarding the quiz milestone when it was passed.

    The status check and the milestone commit share the learner's lock, so a
    second concurrent complete sees COMPLETED and is rejected before it can
    award the milestone again.
    """
    now = now or utcnow()
    async with learner_locks.hold(quiz.learner_id):
        quiz.require(SessionStatus.IN_PROGRESS, "complete")

        passed = quiz.is_exhausted and quiz.score_percent >= settings.passing_score
        if passed:
            milestone = Milestone.QUIZ_PERFECT if quiz.score_percent == 100 else Milestone.QUIZ_PASSED
            result = await _apply_milestone(db, quiz.learner_id, milestone, now)
            quiz.record_completion_bonus(result)

        return quiz.complete()


async def abandon_quiz(quiz: QuizSession) -> SessionSummary:
    # Waits for an in-flight answer so its commit and record() stay paired
    async with learner_locks.hold(quiz.learner_id):
        return quiz.abandon()


async def grade_review(
    db: AsyncSession,
    learner_id: int,
    question_id: int,
    quality: int | Quality,
    now: datetime | None = None,
) -> ReviewResult:
    """Grade one card in standalone review mode (creating it on first review)."""
    now = now or utcnow()
    try:
        quality = Quality(quality)
    except ValueError as exc:
        raise InvalidReference("Unknown review quality", quality=quality) from exc

    scheduler = default_scheduler()
    async with learner_locks.hold(learner_id):
        async with repository.unit_of_work(db, learner_id):
            learner = await repository.get_learner(db, learner_id)
            await repository.get_question(db, question_id)
            progress_row, progress = await repository.load_progress(db, learner_id)
            card_row, card = await repository.load_card(db, learner_id, question_id)

            graded = scheduler.grade(card, quality, learner_id=learner_id, question_id=question_id, now=now)
            scoring = ScoringEngine().apply_review(progress, repository.learner_today(learner, now))

            repository.save_card(db, card_row, graded)
            repository.save_progress(db, progress_row, progress, scoring.state, now)

    logger.debug(
        "Review q%d for learner %d graded %s: ease %.2f, next in %d days",
        question_id,
        learner_id,
        quality.name,
        graded.ease_factor,
        graded.interval_days,
    )
    return ReviewResult(card=graded, scoring=scoring)


async def record_milestone(
    db: AsyncSession,
    learner_id: int,
    milestone: Milestone | str,
    now: datetime | None = None,
) -> ScoringResult:
    """Apply a platform milestone (chapter, quiz or certificate)."""
    now = now or utcnow()
    try:
        milestone = Milestone(milestone)
    except ValueError as exc:
        raise InvalidReference("Unknown milestone", milestone=milestone) from exc

    async with learner_locks.hold(learner_id):
        return await _apply_milestone(db, learner_id, milestone, now)


async def _apply_milestone(
    db: AsyncSession,
    learner_id: int,
    milestone: Milestone,
    now: datetime,
) -> ScoringResult:
    async with repository.unit_of_work(db, learner_id):
        learner = await repository.get_learner(db, learner_id)
        progress_row, progress = await repository.load_progress(db, learner_id)
        result = ScoringEngine().apply_milestone(progress, milestone, repository.learner_today(learner, now))
        repository.save_progress(db, progress_row, progress, result.state, now)
    return result


async def get_progress(db: AsyncSession, learner_id: int) -> tuple[LearnerProgressState, LevelProgress]:
    """Return the learner's progress and level progress without creating rows."""
    await repository.get_learner(db, learner_id)
    row = await db.get(LearnerProgress, learner_id, populate_existing=True)
    if row is None:
        state = LearnerProgressState(learner_id=learner_id)
    else:
        badge_ids = await repository.badge_ids(db, learner_id)
        state = repository.progress_from_row(row, badge_ids)
    return state, level_progress(state.total_xp)
