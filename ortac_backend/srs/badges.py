"""Badge catalog and requirement evaluation.

Each badge carries a declarative requirement (kind + target count). A single
dispatch function reads the matching counter from the learner's progress
state, so adding a badge never needs new code.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ortac_backend.srs.scoring import LearnerProgressState


class BadgeCategory(str, Enum):
    PROGRESS = "progress"
    ACHIEVEMENT = "achievement"
    STREAK = "streak"
    SPECIAL = "special"


class RequirementKind(str, Enum):
    CHAPTERS_COMPLETED = "chapters_completed"
    QUIZZES_PASSED = "quizzes_passed"
    STREAK_DAYS = "streak_days"
    TOTAL_XP = "total_xp"
    CERTIFICATES = "certificates"
    REVIEW_CARDS = "review_cards"
    LEVEL = "level"


@dataclass(frozen=True)
class Requirement:
    kind: RequirementKind
    count: int


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    title: str
    description: str
    category: BadgeCategory
    requirement: Requirement
    xp_reward: int = 0


CATEGORY_ORDER = (
    BadgeCategory.PROGRESS,
    BadgeCategory.ACHIEVEMENT,
    BadgeCategory.STREAK,
    BadgeCategory.SPECIAL,
)


def _badge(
    badge_id: str,
    title: str,
    description: str,
    category: BadgeCategory,
    kind: RequirementKind,
    count: int,
    xp_reward: int,
) -> BadgeDefinition:
    return BadgeDefinition(
        id=badge_id,
        title=title,
        description=description,
        category=category,
        requirement=Requirement(kind=kind, count=count),
        xp_reward=xp_reward,
    )


DEFAULT_BADGES: tuple[BadgeDefinition, ...] = (
    _badge("first_chapter", "First Step", "Complete your first chapter",
           BadgeCategory.PROGRESS, RequirementKind.CHAPTERS_COMPLETED, 1, 25),
    _badge("five_chapters", "Bookworm", "Complete 5 chapters",
           BadgeCategory.PROGRESS, RequirementKind.CHAPTERS_COMPLETED, 5, 50),
    _badge("all_chapters", "Scholar", "Complete all chapters",
           BadgeCategory.PROGRESS, RequirementKind.CHAPTERS_COMPLETED, 17, 200),
    _badge("xp_100", "Beginner", "Earn 100 XP",
           BadgeCategory.PROGRESS, RequirementKind.TOTAL_XP, 100, 0),
    _badge("xp_500", "Advanced", "Earn 500 XP",
           BadgeCategory.PROGRESS, RequirementKind.TOTAL_XP, 500, 0),
    _badge("xp_1000", "Expert", "Earn 1000 XP",
           BadgeCategory.PROGRESS, RequirementKind.TOTAL_XP, 1000, 0),
    _badge("level_5", "Rising Star", "Reach level 5",
           BadgeCategory.PROGRESS, RequirementKind.LEVEL, 5, 50),
    _badge("level_10", "Veteran", "Reach level 10",
           BadgeCategory.PROGRESS, RequirementKind.LEVEL, 10, 100),
    _badge("first_quiz", "Quiz Apprentice", "Pass your first quiz",
           BadgeCategory.ACHIEVEMENT, RequirementKind.QUIZZES_PASSED, 1, 25),
    _badge("ten_quizzes", "Quiz Master", "Pass 10 quizzes",
           BadgeCategory.ACHIEVEMENT, RequirementKind.QUIZZES_PASSED, 10, 100),
    _badge("review_10", "Recall Rookie", "Review 10 cards",
           BadgeCategory.ACHIEVEMENT, RequirementKind.REVIEW_CARDS, 10, 10),
    _badge("review_master", "Review Expert", "Review 50 cards",
           BadgeCategory.ACHIEVEMENT, RequirementKind.REVIEW_CARDS, 50, 50),
    _badge("streak_3", "On a Roll", "Study 3 days in a row",
           BadgeCategory.STREAK, RequirementKind.STREAK_DAYS, 3, 15),
    _badge("streak_7", "Weekly Routine", "Study 7 days in a row",
           BadgeCategory.STREAK, RequirementKind.STREAK_DAYS, 7, 50),
    _badge("streak_30", "Monthly Master", "Study 30 days in a row",
           BadgeCategory.STREAK, RequirementKind.STREAK_DAYS, 30, 200),
    _badge("first_certificate", "Certified", "Earn your first certificate",
           BadgeCategory.SPECIAL, RequirementKind.CERTIFICATES, 1, 100),
)


def requirement_value(kind: RequirementKind, state: LearnerProgressState) -> int:
    """Return the learner's current value for a requirement kind."""
    if kind == RequirementKind.CHAPTERS_COMPLETED:
        return state.chapters_completed
    if kind == RequirementKind.QUIZZES_PASSED:
        return state.quizzes_passed
    if kind == RequirementKind.STREAK_DAYS:
        # longest >= current, so a streak badge stays earned after a break
        return state.longest_streak_days
    if kind == RequirementKind.TOTAL_XP:
        return state.total_xp
    if kind == RequirementKind.CERTIFICATES:
        return state.certificates_earned
    if kind == RequirementKind.REVIEW_CARDS:
        return state.review_cards_reviewed
    if kind == RequirementKind.LEVEL:
        return state.level
    raise ValueError(f"Unhandled requirement kind: {kind}")


def requirement_met(requirement: Requirement, state: LearnerProgressState) -> bool:
    return requirement_value(requirement.kind, state) >= requirement.count


def requirement_progress(requirement: Requirement, state: LearnerProgressState) -> int:
    """Return progress towards a requirement, capped at its target count."""
    return min(requirement_value(requirement.kind, state), requirement.count)


def evaluation_order(badges: Iterable[BadgeDefinition]) -> list[BadgeDefinition]:
    """Sort badges by category, then ascending target count, then id."""
    return sorted(
        badges,
        key=lambda b: (CATEGORY_ORDER.index(b.category), b.requirement.count, b.id),
    )


def find_badge(badge_id: str, catalog: Iterable[BadgeDefinition] = DEFAULT_BADGES) -> BadgeDefinition | None:
    for badge in catalog:
        if badge.id == badge_id:
            return badge
    return None
