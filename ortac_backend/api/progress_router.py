"""API routes for learner progression: XP, levels, streaks and badges."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ortac_backend.api.schemas import (
    BadgeResponse,
    MilestoneRequest,
    MilestoneResponse,
    ProgressResponse,
    badge_response,
)
from ortac_backend.database import get_session
from ortac_backend.srs import service
from ortac_backend.srs.badges import DEFAULT_BADGES, evaluation_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])


# Registered before /{learner_id} so "badges" is not parsed as an id
@router.get("/badges", response_model=list[BadgeResponse])
async def badge_catalog() -> list[BadgeResponse]:
    """List every badge, grouped by category."""
    return [badge_response(b) for b in evaluation_order(DEFAULT_BADGES)]


@router.get("/{learner_id}", response_model=ProgressResponse)
async def get_learner_progress(
    learner_id: int,
    db: AsyncSession = Depends(get_session),
) -> ProgressResponse:
    """Get overall progression for a learner."""
    state, level = await service.get_progress(db, learner_id)
    return ProgressResponse(
        learner_id=learner_id,
        total_xp=state.total_xp,
        level=level.level,
        xp_into_level=level.xp_into_level,
        xp_for_next_level=level.xp_for_next_level,
        level_percent=level.percent,
        current_streak_days=state.current_streak_days,
        longest_streak_days=state.longest_streak_days,
        last_activity_date=state.last_activity_date,
        chapters_completed=state.chapters_completed,
        quizzes_passed=state.quizzes_passed,
        certificates_earned=state.certificates_earned,
        review_cards_reviewed=state.review_cards_reviewed,
        correct_answers=state.correct_answers,
        badges=sorted(state.unlocked_badge_ids),
    )


@router.post("/{learner_id}/milestone", response_model=MilestoneResponse)
async def post_milestone(
    learner_id: int,
    request: MilestoneRequest,
    db: AsyncSession = Depends(get_session),
) -> MilestoneResponse:
    """Record a chapter, quiz or certificate milestone."""
    result = await service.retry_on_conflict(service.record_milestone)(db, learner_id, request.milestone)
    return MilestoneResponse(
        xp_gained=result.total_xp_gained,
        total_xp=result.state.total_xp,
        level=result.state.level,
        leveled_up=result.leveled_up,
        badges_unlocked=[badge_response(b) for b in result.newly_unlocked],
    )
