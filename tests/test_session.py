"""Tests for the in-memory quiz session state machine."""

from datetime import date, datetime

import pytest

from ortac_backend.srs.attempt import DifficultyTier
from ortac_backend.srs.difficulty import DifficultyState
from ortac_backend.srs.errors import InvalidReference, InvalidSessionState
from ortac_backend.srs.scoring import LearnerProgressState, Milestone, ScoringEngine
from ortac_backend.srs.session import QuizSession, SessionQuestion, SessionStatus
from ortac_backend.srs.sm2 import Quality

NOW = datetime(2026, 3, 2, 9, 0)
TODAY = date(2026, 3, 2)

EASY, MEDIUM, HARD = DifficultyTier.EASY, DifficultyTier.MEDIUM, DifficultyTier.HARD


def make_question(question_id: int, tier: DifficultyTier) -> SessionQuestion:
    # option 10*id is correct, 10*id + 1 is wrong
    return SessionQuestion(
        question_id=question_id,
        topic_id=1,
        tier=tier,
        option_ids=(question_id * 10, question_id * 10 + 1),
        correct_option_ids=frozenset({question_id * 10}),
    )


def right(question: SessionQuestion) -> int:
    return question.question_id * 10


def wrong(question: SessionQuestion) -> int:
    return question.question_id * 10 + 1


class TestQuizSession:
    def setup_method(self) -> None:
        self.questions = [
            make_question(1, EASY),
            make_question(2, MEDIUM),
            make_question(3, HARD),
            make_question(4, MEDIUM),
            make_question(5, EASY),
        ]
        self.session = QuizSession(learner_id=7, topic_id=1)
        self.progress = LearnerProgressState(learner_id=7)

    def start(self, tier: DifficultyTier = MEDIUM, streak: int = 0) -> None:
        self.session.start(self.questions, DifficultyState(tier, streak))

    def answer(self, option_id: int, time_ms: int = 20000):
        outcome = self.session.submit_answer(option_id, time_ms, self.progress, None, NOW, TODAY)
        self.progress = outcome.scoring.state
        return outcome

    def test_start(self) -> None:
        self.start()
        assert self.session.status == SessionStatus.IN_PROGRESS
        assert self.session.remaining == 5

    def test_start_without_questions(self) -> None:
        with pytest.raises(InvalidReference):
            self.session.start([], DifficultyState(MEDIUM))
        assert self.session.status == SessionStatus.NOT_STARTED

    def test_start_twice(self) -> None:
        self.start()
        with pytest.raises(InvalidSessionState):
            self.start()

    def test_answer_before_start(self) -> None:
        with pytest.raises(InvalidSessionState):
            self.session.evaluate(10, 1000, self.progress, None, NOW, TODAY)

    def test_next_question_prefers_target_tier(self) -> None:
        self.start(MEDIUM)
        assert self.session.next_question().question_id == 2
        self.session.difficulty = DifficultyState(HARD)
        assert self.session.next_question().question_id == 3

    def test_next_question_falls_back_to_closest_tier(self) -> None:
        self.questions = [make_question(1, EASY), make_question(2, HARD), make_question(3, MEDIUM)]
        self.start(HARD)
        self.answer(right(self.questions[1]))
        # No hard question left: medium is one step away, easy two
        assert self.session.next_question().question_id == 3

    def test_evaluate_does_not_mutate(self) -> None:
        self.start()
        outcome = self.session.evaluate(right(self.questions[1]), 1000, self.progress, None, NOW, TODAY)
        assert outcome.attempt.correct
        assert self.session.current_index == 0
        assert self.session.stats.answered == 0
        assert self.session.difficulty == DifficultyState(MEDIUM)

    def test_record_applies_outcome(self) -> None:
        self.start()
        outcome = self.session.evaluate(right(self.questions[1]), 8000, self.progress, None, NOW, TODAY)
        self.session.record(outcome)
        assert self.session.current_index == 1
        assert self.session.difficulty == DifficultyState(MEDIUM, 1)
        assert self.session.stats.xp_earned == 20
        assert self.session.stats.tier_timeline == [MEDIUM]

    def test_stale_outcome_rejected(self) -> None:
        self.start()
        outcome = self.session.evaluate(right(self.questions[1]), 1000, self.progress, None, NOW, TODAY)
        self.session.record(outcome)
        with pytest.raises(InvalidSessionState):
            self.session.record(outcome)
        assert self.session.stats.answered == 1

    def test_option_from_other_question(self) -> None:
        self.start()
        with pytest.raises(InvalidReference):
            self.session.evaluate(right(self.questions[0]), 1000, self.progress, None, NOW, TODAY)

    def test_progress_for_other_learner(self) -> None:
        self.start()
        with pytest.raises(InvalidReference):
            self.session.evaluate(
                right(self.questions[1]), 1000, LearnerProgressState(learner_id=8), None, NOW, TODAY
            )

    def test_third_correct_at_medium_scores_thirty(self) -> None:
        self.start(MEDIUM, streak=2)
        outcome = self.answer(right(self.questions[1]), time_ms=8000)
        assert outcome.attempt.difficulty_tier == MEDIUM
        assert outcome.difficulty_after == DifficultyState(HARD, 3)
        assert outcome.scoring.xp_delta == 30
        assert outcome.quality == Quality.EASY
        assert outcome.card.repetitions == 1

    def test_three_misses_walk_down(self) -> None:
        self.start(HARD)
        for _ in range(3):
            question = self.session.next_question()
            self.answer(wrong(question))
        assert self.session.stats.tier_timeline == [HARD, MEDIUM, EASY]
        assert self.session.difficulty.tier == EASY
        assert self.session.stats.xp_earned == 0

    def test_exhausted_queue(self) -> None:
        self.questions = [make_question(1, MEDIUM)]
        self.start()
        self.answer(right(self.questions[0]))
        assert self.session.is_exhausted
        assert self.session.next_question() is None
        with pytest.raises(InvalidSessionState):
            self.session.evaluate(10, 1000, self.progress, None, NOW, TODAY)

    def test_complete_summary(self) -> None:
        self.start(MEDIUM)
        self.answer(right(self.session.next_question()), time_ms=4000)
        self.answer(wrong(self.session.next_question()), time_ms=6000)
        summary = self.session.complete()
        assert self.session.status == SessionStatus.COMPLETED
        assert summary.answered == 2
        assert summary.correct == 1
        assert summary.total_questions == 5
        assert summary.score_percent == 20
        assert summary.xp_earned == 20
        assert summary.tier_timeline == (MEDIUM, MEDIUM)
        assert summary.best_in_session_streak == 1
        assert summary.average_time_ms == 5000
        assert summary.final_streak_days == 1

    def test_answer_after_complete(self) -> None:
        self.start()
        self.session.complete()
        with pytest.raises(InvalidSessionState):
            self.answer(right(self.questions[1]))

    def test_abandon_keeps_applied_answers(self) -> None:
        self.start()
        self.answer(right(self.questions[1]))
        summary = self.session.abandon()
        assert self.session.status == SessionStatus.ABANDONED
        assert summary.answered == 1
        with pytest.raises(InvalidSessionState):
            self.session.complete()

    def test_completion_bonus_in_summary(self) -> None:
        self.start()
        self.answer(right(self.questions[1]))
        bonus = ScoringEngine().apply_milestone(self.progress, Milestone.QUIZ_PASSED, TODAY)
        self.session.record_completion_bonus(bonus)
        summary = self.session.complete()
        # 15 for the answer, 50 for the quiz, 25 for first_quiz
        assert summary.xp_earned == 90
        assert "first_quiz" in {b.id for b in summary.badges_unlocked}
