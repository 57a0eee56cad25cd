"""API routes for adaptive quiz sessions."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ortac_backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    OptionResponse,
    QuestionResponse,
    SessionStartResponse,
    SessionSummaryResponse,
    badge_response,
)
from ortac_backend.config import settings, utcnow
from ortac_backend.database import get_session
from ortac_backend.srs import repository, service
from ortac_backend.srs.session import QuizSession, SessionSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# In-memory session store (for MVP; move to Redis for production)
_active_sessions: dict[str, QuizSession] = {}


def _prune_expired() -> None:
    cutoff = utcnow() - timedelta(seconds=settings.session_ttl_seconds)
    expired = [sid for sid, quiz in _active_sessions.items() if quiz.started_at and quiz.started_at < cutoff]
    for sid in expired:
        del _active_sessions[sid]
    if expired:
        logger.info("Dropped %d expired quiz sessions", len(expired))


def _get_quiz(session_id: str) -> QuizSession:
    quiz = _active_sessions.get(session_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Session not found")
    return quiz


def _summary_response(quiz: QuizSession, summary: SessionSummary) -> SessionSummaryResponse:
    return SessionSummaryResponse(
        session_id=quiz.session_id,
        status=quiz.status.value,
        answered=summary.answered,
        correct=summary.correct,
        total_questions=summary.total_questions,
        score_percent=summary.score_percent,
        xp_earned=summary.xp_earned,
        tier_timeline=[t.value for t in summary.tier_timeline],
        badges_unlocked=[badge_response(b) for b in summary.badges_unlocked],
        final_streak_days=summary.final_streak_days,
        best_in_session_streak=summary.best_in_session_streak,
        average_time_ms=summary.average_time_ms,
        final_level=summary.final_level,
        leveled_up=summary.leveled_up,
    )


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    learner_id: int,
    topic_id: int,
    size: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> SessionStartResponse:
    """Start a new adaptive quiz for a learner on a topic."""
    _prune_expired()
    quiz = await service.retry_on_conflict(service.start_quiz)(db, learner_id, topic_id, size=size)
    _active_sessions[quiz.session_id] = quiz

    return SessionStartResponse(
        session_id=quiz.session_id,
        learner_id=learner_id,
        topic_id=topic_id,
        total_questions=len(quiz.questions),
        review_questions=sum(1 for q in quiz.questions if q.from_review),
        starting_tier=quiz.difficulty.tier.value,
    )


@router.get("/next/{session_id}", response_model=QuestionResponse)
async def session_next(
    session_id: str,
    db: AsyncSession = Depends(get_session),
) -> QuestionResponse:
    """Get the question to answer next."""
    quiz = _get_quiz(session_id)
    current = quiz.current_question()
    question = await repository.get_question(db, current.question_id)

    return QuestionResponse(
        question_id=question.id,
        topic_id=question.topic_id,
        prompt=question.prompt,
        tier=current.tier.value,
        target_tier=quiz.difficulty.tier.value,
        options=[OptionResponse(id=o.id, text=o.text) for o in question.options],
        from_review=current.from_review,
        remaining=quiz.remaining,
    )


@router.post("/answer/{session_id}", response_model=AnswerResponse)
async def session_answer(
    session_id: str,
    request: AnswerRequest,
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    """Submit an answer for the current question."""
    quiz = _get_quiz(session_id)
    outcome = await service.retry_on_conflict(service.submit_answer)(
        db,
        quiz,
        option_id=request.option_id,
        response_time_ms=request.time_ms,
        struggled=request.struggled,
    )
    question = await repository.get_question(db, outcome.question.question_id)
    progress = outcome.scoring.state

    return AnswerResponse(
        correct=outcome.attempt.correct,
        correct_option_ids=sorted(outcome.question.correct_option_ids),
        explanation=question.explanation,
        quality=outcome.quality.name.lower(),
        xp_gained=outcome.scoring.total_xp_gained,
        total_xp=progress.total_xp,
        level=progress.level,
        leveled_up=outcome.scoring.leveled_up,
        badges_unlocked=[badge_response(b) for b in outcome.scoring.newly_unlocked],
        tier_before=outcome.difficulty_before.tier.value,
        tier_after=outcome.difficulty_after.tier.value,
        streak=outcome.difficulty_after.streak,
        next_due=outcome.card.due_at,
        interval_days=outcome.card.interval_days,
        ease_factor=outcome.card.ease_factor,
        remaining=quiz.remaining,
        session_complete=quiz.is_exhausted,
    )


@router.post("/complete/{session_id}", response_model=SessionSummaryResponse)
async def session_complete(
    session_id: str,
    db: AsyncSession = Depends(get_session),
) -> SessionSummaryResponse:
    """Complete the quiz and return its summary."""
    quiz = _get_quiz(session_id)
    summary = await service.retry_on_conflict(service.complete_quiz)(db, quiz)
    _active_sessions.pop(session_id, None)
    return _summary_response(quiz, summary)


@router.post("/abandon/{session_id}", response_model=SessionSummaryResponse)
async def session_abandon(session_id: str) -> SessionSummaryResponse:
    """Abandon the quiz. Answers already submitted keep their effects."""
    quiz = _get_quiz(session_id)
    summary = await service.abandon_quiz(quiz)
    _active_sessions.pop(session_id, None)
    return _summary_response(quiz, summary)
