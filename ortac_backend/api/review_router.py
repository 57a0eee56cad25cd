"""API routes for standalone review mode."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ortac_backend.api.schemas import (
    DueCardsResponse,
    GradeRequest,
    GradeResponse,
    badge_response,
    card_response,
)
from ortac_backend.database import get_session
from ortac_backend.srs import service
from ortac_backend.srs.queue import get_due_cards

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


@router.get("/{learner_id}/due", response_model=DueCardsResponse)
async def review_due(
    learner_id: int,
    limit: int | None = Query(None, ge=0),
    db: AsyncSession = Depends(get_session),
) -> DueCardsResponse:
    """List the learner's due review cards, oldest due first."""
    cards = await get_due_cards(db, learner_id, limit=limit)
    return DueCardsResponse(learner_id=learner_id, cards=[card_response(c) for c in cards])


@router.post("/{learner_id}/grade", response_model=GradeResponse)
async def review_grade(
    learner_id: int,
    request: GradeRequest,
    db: AsyncSession = Depends(get_session),
) -> GradeResponse:
    """Grade one card and reschedule it."""
    result = await service.retry_on_conflict(service.grade_review)(
        db, learner_id, request.question_id, request.quality
    )
    return GradeResponse(
        card=card_response(result.card),
        review_cards_reviewed=result.scoring.state.review_cards_reviewed,
        current_streak_days=result.scoring.state.current_streak_days,
        badges_unlocked=[badge_response(b) for b in result.scoring.newly_unlocked],
    )
