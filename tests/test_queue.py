"""Tests for quiz queue assembly and review-priority ordering."""

from datetime import datetime, timedelta
from types import SimpleNamespace

from ortac_backend.srs.attempt import DifficultyTier
from ortac_backend.srs.queue import assemble_queue, review_priority_order
from ortac_backend.srs.sm2 import ReviewCard

NOW = datetime(2026, 3, 2, 9, 0)


def make_question(question_id: int, difficulty: str | None = "medium", has_answer: bool = True):
    options = [
        SimpleNamespace(id=question_id * 10, is_correct=has_answer),
        SimpleNamespace(id=question_id * 10 + 1, is_correct=False),
    ]
    return SimpleNamespace(id=question_id, topic_id=1, difficulty=difficulty, options=options)


def make_due(question_id: int, days_overdue: int) -> ReviewCard:
    return ReviewCard(
        learner_id=1,
        question_id=question_id,
        ease_factor=2.5,
        interval_days=1,
        repetitions=1,
        due_at=NOW - timedelta(days=days_overdue),
    )


class TestReviewPriorityOrder:
    def test_priority_bands(self) -> None:
        accuracy = {2: 0.9, 3: 0.3, 4: 0.6}
        order = review_priority_order([1, 2, 3, 4, 5], due_ids={5}, accuracy=accuracy)
        # due, struggling, unseen, middling, comfortable
        assert order == [5, 3, 1, 4, 2]

    def test_ties_keep_incoming_order(self) -> None:
        assert review_priority_order([4, 2, 9], due_ids=set(), accuracy={}) == [4, 2, 9]


class TestAssembleQueue:
    def test_due_cards_first(self) -> None:
        pool = [make_question(i) for i in range(1, 6)]
        queue = assemble_queue(pool, [make_due(4, 3), make_due(2, 1)], {}, size=10, max_review_prefix=5)
        assert [q.question_id for q in queue.review_questions] == [4, 2]
        assert all(q.from_review for q in queue.review_questions)
        assert [q.question_id for q in queue.pool_questions] == [1, 3, 5]
        assert queue.total == 5

    def test_review_prefix_bounded(self) -> None:
        pool = [make_question(i) for i in range(1, 8)]
        due = [make_due(i, 10 - i) for i in range(1, 8)]
        queue = assemble_queue(pool, due, {}, size=10, max_review_prefix=2)
        assert [q.question_id for q in queue.review_questions] == [1, 2]
        # Remaining due questions still lead the pool
        assert [q.question_id for q in queue.pool_questions] == [3, 4, 5, 6, 7]

    def test_capped_at_size(self) -> None:
        pool = [make_question(i) for i in range(1, 20)]
        queue = assemble_queue(pool, [make_due(7, 1)], {}, size=4, max_review_prefix=5)
        assert queue.total == 4
        assert [q.question_id for q in queue.ordered()] == [7, 1, 2, 3]

    def test_questions_without_correct_option_skipped(self) -> None:
        pool = [make_question(1, has_answer=False), make_question(2)]
        queue = assemble_queue(pool, [make_due(1, 2)], {}, size=10, max_review_prefix=5)
        assert [q.question_id for q in queue.ordered()] == [2]

    def test_session_question_fields(self) -> None:
        queue = assemble_queue([make_question(3, difficulty=None)], [], {}, size=5, max_review_prefix=5)
        question = queue.pool_questions[0]
        assert question.tier == DifficultyTier.MEDIUM
        assert question.option_ids == (30, 31)
        assert question.correct_option_ids == frozenset({30})
        assert not question.from_review

    def test_custom_ordering(self) -> None:
        pool = [make_question(i) for i in range(1, 4)]
        queue = assemble_queue(
            pool,
            [],
            {},
            size=10,
            max_review_prefix=5,
            ordering=lambda ids, due, accuracy: sorted(ids, reverse=True),
        )
        assert [q.question_id for q in queue.ordered()] == [3, 2, 1]
