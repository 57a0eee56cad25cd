"""Pydantic schemas for API request/response models."""

from datetime import date, datetime

from pydantic import BaseModel

from ortac_backend.srs.scoring import Milestone

# --- Shared ---


class BadgeResponse(BaseModel):
    """A badge from the catalog."""

    id: str
    title: str
    description: str
    category: str
    xp_reward: int


class ReviewCardResponse(BaseModel):
    """A learner's review card after grading."""

    question_id: int
    ease_factor: float
    interval_days: int
    repetitions: int
    due: datetime
    last_quality: int | None = None


# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new quiz session."""

    session_id: str
    learner_id: int
    topic_id: int
    total_questions: int
    review_questions: int
    starting_tier: str


class OptionResponse(BaseModel):
    id: int
    text: str


class QuestionResponse(BaseModel):
    """The next question to answer. Correctness is never exposed here."""

    question_id: int
    topic_id: int
    prompt: str
    tier: str
    target_tier: str
    options: list[OptionResponse]
    from_review: bool
    remaining: int


class AnswerRequest(BaseModel):
    """Request to submit an answer for the current question."""

    option_id: int
    time_ms: int
    struggled: bool = False


class AnswerResponse(BaseModel):
    """Feedback, scoring and scheduling info for one answer."""

    correct: bool
    correct_option_ids: list[int]
    explanation: str | None = None
    quality: str
    xp_gained: int
    total_xp: int
    level: int
    leveled_up: bool
    badges_unlocked: list[BadgeResponse]
    tier_before: str
    tier_after: str
    streak: int
    next_due: datetime
    interval_days: int
    ease_factor: float
    remaining: int
    session_complete: bool


class SessionSummaryResponse(BaseModel):
    """Summary returned when a quiz is completed or abandoned."""

    session_id: str
    status: str
    answered: int
    correct: int
    total_questions: int
    score_percent: int
    xp_earned: int
    tier_timeline: list[str]
    badges_unlocked: list[BadgeResponse]
    final_streak_days: int
    best_in_session_streak: int
    average_time_ms: float
    final_level: int
    leveled_up: bool


# --- Review ---


class DueCardsResponse(BaseModel):
    learner_id: int
    cards: list[ReviewCardResponse]


class GradeRequest(BaseModel):
    """Grade one card in review mode (0 = fail, 1 = hard, 2 = good, 3 = easy)."""

    question_id: int
    quality: int


class GradeResponse(BaseModel):
    card: ReviewCardResponse
    review_cards_reviewed: int
    current_streak_days: int
    badges_unlocked: list[BadgeResponse]


# --- Progress ---


class ProgressResponse(BaseModel):
    """Overall progression for a learner."""

    learner_id: int
    total_xp: int
    level: int
    xp_into_level: int
    xp_for_next_level: int
    level_percent: int
    current_streak_days: int
    longest_streak_days: int
    last_activity_date: date | None
    chapters_completed: int
    quizzes_passed: int
    certificates_earned: int
    review_cards_reviewed: int
    correct_answers: int
    badges: list[str]


class MilestoneRequest(BaseModel):
    milestone: Milestone


class MilestoneResponse(BaseModel):
    xp_gained: int
    total_xp: int
    level: int
    leveled_up: bool
    badges_unlocked: list[BadgeResponse]


def badge_response(badge) -> BadgeResponse:
    return BadgeResponse(
        id=badge.id,
        title=badge.title,
        description=badge.description,
        category=badge.category.value,
        xp_reward=badge.xp_reward,
    )


def card_response(card) -> ReviewCardResponse:
    return ReviewCardResponse(
        question_id=card.question_id,
        ease_factor=card.ease_factor,
        interval_days=card.interval_days,
        repetitions=card.repetitions,
        due=card.due_at,
        last_quality=int(card.last_quality) if card.last_quality is not None else None,
    )
