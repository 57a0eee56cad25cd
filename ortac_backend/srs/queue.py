"""Queue building for quiz sessions and review mode.

Due review cards come first (most overdue first), then the topic's question
pool in review-priority order, capped at the session size.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ortac_backend.config import settings, utcnow
from ortac_backend.models.card import Card
from ortac_backend.models.question import Question
from ortac_backend.srs import repository
from ortac_backend.srs.attempt import DifficultyTier
from ortac_backend.srs.session import SessionQuestion
from ortac_backend.srs.sm2 import ReviewCard, ReviewScheduler

logger = logging.getLogger(__name__)

# Orders candidate question ids given the due set and per-question accuracy
QuestionOrdering = Callable[[Sequence[int], set[int], Mapping[int, float]], list[int]]

# Historical accuracy below this marks a question as hard for the learner
STRUGGLING_ACCURACY = 0.5
# ... and at or above this as easy
COMFORTABLE_ACCURACY = 0.8


def review_priority_order(
    question_ids: Sequence[int],
    due_ids: set[int],
    accuracy: Mapping[int, float],
) -> list[int]:
    """Order questions for a session.

    Priority:
    1. Questions with a due review card
    2. Questions the learner struggles with (tackled while fresh)
    3. Unseen questions
    4. Questions with middling accuracy
    5. Questions the learner is comfortable with
    Ties keep the incoming order.
    """

    def rank(qid: int) -> int:
        if qid in due_ids:
            return 0
        if qid not in accuracy:
            return 2
        if accuracy[qid] < STRUGGLING_ACCURACY:
            return 1
        if accuracy[qid] >= COMFORTABLE_ACCURACY:
            return 4
        return 3

    return sorted(question_ids, key=rank)


def to_session_question(question: Question, from_review: bool = False) -> SessionQuestion:
    return SessionQuestion(
        question_id=question.id,
        topic_id=question.topic_id,
        tier=DifficultyTier.parse(question.difficulty),
        option_ids=tuple(o.id for o in question.options),
        correct_option_ids=frozenset(o.id for o in question.options if o.is_correct),
        from_review=from_review,
    )


@dataclass
class QuizQueue:
    """A prepared queue of questions for a quiz session."""

    review_questions: list[SessionQuestion] = field(default_factory=list)
    pool_questions: list[SessionQuestion] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.review_questions) + len(self.pool_questions)

    def ordered(self) -> list[SessionQuestion]:
        return self.review_questions + self.pool_questions


def assemble_queue(
    pool: Sequence[Question],
    due_cards: Sequence[ReviewCard],
    accuracy: Mapping[int, float],
    size: int,
    max_review_prefix: int,
    ordering: QuestionOrdering = review_priority_order,
) -> QuizQueue:
    """Pick up to ``size`` questions: a bounded due-card prefix, then the ordered pool.

    Args:
        pool: The topic's active questions.
        due_cards: The learner's due cards, oldest due first.
        accuracy: Historical accuracy per question id.
        size: Maximum number of questions.
        max_review_prefix: Maximum number of due-card questions up front.
        ordering: Review-priority function for the rest of the pool.

    Returns:
        A QuizQueue with review questions first.
    """
    by_id = {q.id: q for q in pool}
    usable = [q for q in pool if any(o.is_correct for o in q.options)]
    if len(usable) < len(pool):
        logger.warning("Skipping %d questions without a correct option", len(pool) - len(usable))
    usable_ids = {q.id for q in usable}

    due_ids = [c.question_id for c in due_cards if c.question_id in usable_ids]
    prefix_ids = due_ids[: max(0, min(max_review_prefix, size))]
    review = [to_session_question(by_id[qid], from_review=True) for qid in prefix_ids]

    taken = set(prefix_ids)
    remaining_ids = [q.id for q in usable if q.id not in taken]
    ordered_ids = ordering(remaining_ids, set(due_ids), accuracy)
    rest = [to_session_question(by_id[qid]) for qid in ordered_ids[: max(0, size - len(review))]]

    return QuizQueue(review_questions=review, pool_questions=rest)


async def get_due_cards(
    db: AsyncSession,
    learner_id: int,
    limit: int | None = None,
    now: datetime | None = None,
    topic_id: int | None = None,
    scheduler: ReviewScheduler | None = None,
) -> list[ReviewCard]:
    """Return the learner's due review cards, oldest due first (ties by question id).

    Mastered cards are excluded.
    """
    await repository.get_learner(db, learner_id)
    now = now or utcnow()
    scheduler = scheduler or ReviewScheduler(
        mastery_repetitions=settings.mastery_repetitions,
        mastery_interval_days=settings.mastery_interval_days,
    )

    conditions = [Card.learner_id == learner_id, Card.due <= now]
    stmt = select(Card)
    if topic_id is not None:
        stmt = stmt.join(Question, Question.id == Card.question_id)
        conditions.append(Question.topic_id == topic_id)
    stmt = stmt.where(and_(*conditions)).order_by(Card.due.asc(), Card.question_id.asc())
    rows = (await db.execute(stmt)).scalars().all()

    cards = scheduler.due_cards(
        (repository.card_from_row(r) for r in rows),
        now,
        limit=limit,
    )
    logger.debug("Learner %d has %d due cards (limit %s)", learner_id, len(cards), limit)
    return cards


async def build_queue(
    db: AsyncSession,
    learner_id: int,
    topic_id: int,
    size: int | None = None,
    now: datetime | None = None,
    ordering: QuestionOrdering = review_priority_order,
) -> QuizQueue:
    """Build the question queue for a learner's quiz on one topic."""
    size = size or settings.default_session_size
    pool = await repository.topic_questions(db, topic_id)
    due_cards = await get_due_cards(db, learner_id, now=now, topic_id=topic_id)
    accuracy = await repository.question_accuracy(db, learner_id, [q.id for q in pool])

    queue = assemble_queue(
        pool,
        due_cards,
        accuracy,
        size=size,
        max_review_prefix=settings.max_review_prefix,
        ordering=ordering,
    )
    logger.info(
        "Built queue for learner %d on topic %d: %d review + %d pool = %d total",
        learner_id,
        topic_id,
        len(queue.review_questions),
        len(queue.pool_questions),
        queue.total,
    )
    return queue
