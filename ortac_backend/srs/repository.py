"""Conversions between ORM rows and engine state, plus the storage lookups
the engine consumes (learners, topics, questions, topic accuracy).
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ortac_backend.config import settings
from ortac_backend.models.attempt_log import AttemptLog
from ortac_backend.models.card import Card
from ortac_backend.models.learner import Learner
from ortac_backend.models.progress import LearnerBadge, LearnerProgress
from ortac_backend.models.question import Question, Topic
from ortac_backend.srs.errors import InvalidReference, PersistenceConflict
from ortac_backend.srs.scoring import LearnerProgressState
from ortac_backend.srs.sm2 import Quality, ReviewCard

logger = logging.getLogger(__name__)


# --- Row <-> state ---


def card_from_row(row: Card) -> ReviewCard:
    return ReviewCard(
        learner_id=row.learner_id,
        question_id=row.question_id,
        ease_factor=row.ease_factor,
        interval_days=row.interval_days,
        repetitions=row.repetitions,
        due_at=row.due,
        last_reviewed_at=row.last_reviewed_at,
        last_quality=Quality(row.last_quality) if row.last_quality is not None else None,
    )


def apply_card(row: Card, card: ReviewCard) -> None:
    row.ease_factor = card.ease_factor
    row.interval_days = card.interval_days
    row.repetitions = card.repetitions
    row.due = card.due_at
    row.last_reviewed_at = card.last_reviewed_at
    row.last_quality = int(card.last_quality) if card.last_quality is not None else None


def progress_from_row(row: LearnerProgress, badge_ids: set[str]) -> LearnerProgressState:
    return LearnerProgressState(
        learner_id=row.learner_id,
        total_xp=row.total_xp,
        level=row.level,
        current_streak_days=row.current_streak_days,
        longest_streak_days=row.longest_streak_days,
        last_activity_date=row.last_activity_date,
        unlocked_badge_ids=frozenset(badge_ids),
        chapters_completed=row.chapters_completed,
        quizzes_passed=row.quizzes_passed,
        certificates_earned=row.certificates_earned,
        review_cards_reviewed=row.review_cards_reviewed,
        correct_answers=row.correct_answers,
    )


def apply_progress(row: LearnerProgress, state: LearnerProgressState) -> None:
    row.total_xp = state.total_xp
    row.level = state.level
    row.current_streak_days = state.current_streak_days
    row.longest_streak_days = state.longest_streak_days
    row.last_activity_date = state.last_activity_date
    row.chapters_completed = state.chapters_completed
    row.quizzes_passed = state.quizzes_passed
    row.certificates_earned = state.certificates_earned
    row.review_cards_reviewed = state.review_cards_reviewed
    row.correct_answers = state.correct_answers


# --- Lookups ---


async def get_learner(db: AsyncSession, learner_id: int) -> Learner:
    learner = await db.get(Learner, learner_id)
    if learner is None:
        raise InvalidReference("Learner not found", learner_id=learner_id)
    return learner


async def get_topic(db: AsyncSession, topic_id: int) -> Topic:
    topic = await db.get(Topic, topic_id)
    if topic is None:
        raise InvalidReference("Topic not found", topic_id=topic_id)
    return topic


async def get_question(db: AsyncSession, question_id: int) -> Question:
    """Fetch an active question with its options."""
    stmt = (
        select(Question)
        .where(and_(Question.id == question_id, Question.is_active.is_(True)))
        .options(selectinload(Question.options))
    )
    question = (await db.execute(stmt)).scalar_one_or_none()
    if question is None:
        raise InvalidReference("Question not found", question_id=question_id)
    return question


async def topic_questions(db: AsyncSession, topic_id: int) -> list[Question]:
    """Return the topic's active question pool (with options), by id."""
    stmt = (
        select(Question)
        .where(and_(Question.topic_id == topic_id, Question.is_active.is_(True)))
        .order_by(Question.id.asc())
        .options(selectinload(Question.options))
    )
    return list((await db.execute(stmt)).scalars().all())


async def topic_accuracy(
    db: AsyncSession,
    learner_id: int,
    topic_id: int,
    window: int | None = None,
    min_attempts: int | None = None,
) -> float | None:
    """Average correctness of the learner's recent attempts on a topic.

    Returns None when there are fewer than ``min_attempts`` attempts.
    """
    window = window or settings.seed_window
    min_attempts = min_attempts if min_attempts is not None else settings.min_seed_attempts
    stmt = (
        select(AttemptLog.correct)
        .where(and_(AttemptLog.learner_id == learner_id, AttemptLog.topic_id == topic_id))
        .order_by(AttemptLog.attempted_at.desc(), AttemptLog.id.desc())
        .limit(window)
    )
    results = [bool(row[0]) for row in (await db.execute(stmt)).all()]
    if len(results) < max(1, min_attempts):
        return None
    return sum(results) / len(results)


async def question_accuracy(db: AsyncSession, learner_id: int, question_ids: list[int]) -> dict[int, float]:
    """Historical accuracy per question for the learner (unseen questions are absent)."""
    if not question_ids:
        return {}
    stmt = select(AttemptLog.question_id, AttemptLog.correct).where(
        and_(AttemptLog.learner_id == learner_id, AttemptLog.question_id.in_(question_ids))
    )
    totals: dict[int, list[int]] = {}
    for question_id, correct in (await db.execute(stmt)).all():
        hits = totals.setdefault(question_id, [0, 0])
        hits[0] += 1 if correct else 0
        hits[1] += 1
    return {qid: hits[0] / hits[1] for qid, hits in totals.items()}


def learner_today(learner: Learner, now: datetime) -> date:
    """Return the learner's local calendar date for a naive UTC ``now``."""
    try:
        tz = ZoneInfo(learner.timezone or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for learner %d, using default", learner.timezone, learner.id)
        tz = ZoneInfo(settings.default_timezone)
    return now.replace(tzinfo=ZoneInfo("UTC")).astimezone(tz).date()


# --- Progress and cards ---


async def load_progress(db: AsyncSession, learner_id: int) -> tuple[LearnerProgress, LearnerProgressState]:
    """Load (or create) the learner's progress row and its engine state."""
    row = await db.get(LearnerProgress, learner_id, populate_existing=True)
    if row is None:
        row = LearnerProgress(learner_id=learner_id)
        db.add(row)
        await db.flush()
    return row, progress_from_row(row, await badge_ids(db, learner_id))


async def badge_ids(db: AsyncSession, learner_id: int) -> set[str]:
    stmt = select(LearnerBadge.badge_id).where(LearnerBadge.learner_id == learner_id)
    return {r[0] for r in (await db.execute(stmt)).all()}


def save_progress(
    db: AsyncSession,
    row: LearnerProgress,
    before: LearnerProgressState,
    after: LearnerProgressState,
    now: datetime,
) -> None:
    """Stage progress changes and new badge rows on the session."""
    apply_progress(row, after)
    for badge_id in sorted(after.unlocked_badge_ids - before.unlocked_badge_ids):
        db.add(LearnerBadge(learner_id=after.learner_id, badge_id=badge_id, unlocked_at=now))


async def load_card(db: AsyncSession, learner_id: int, question_id: int) -> tuple[Card | None, ReviewCard | None]:
    stmt = (
        select(Card)
        .where(and_(Card.learner_id == learner_id, Card.question_id == question_id))
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(stmt)).scalar_one_or_none()
    return row, card_from_row(row) if row is not None else None


def save_card(db: AsyncSession, row: Card | None, card: ReviewCard) -> Card:
    """Stage a graded card, creating its row on first grade."""
    if row is None:
        row = Card(learner_id=card.learner_id, question_id=card.question_id)
        db.add(row)
    apply_card(row, card)
    return row


@asynccontextmanager
async def unit_of_work(db: AsyncSession, learner_id: int) -> AsyncIterator[None]:
    """Commit on success; roll back on any error.

    Lost-update races (stale version, duplicate card/progress/badge rows)
    surface as PersistenceConflict.
    """
    try:
        yield
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("Concurrent update for learner %d: %s", learner_id, exc.__class__.__name__)
        raise PersistenceConflict(
            "Learner state was modified concurrently; retry with fresh state",
            learner_id=learner_id,
        ) from exc
    except Exception:
        await db.rollback()
        raise
