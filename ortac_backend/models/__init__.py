"""SQLAlchemy ORM models for the adaptive learning database."""

from ortac_backend.models.attempt_log import AttemptLog
from ortac_backend.models.base import Base
from ortac_backend.models.card import Card
from ortac_backend.models.learner import Learner
from ortac_backend.models.progress import LearnerBadge, LearnerProgress
from ortac_backend.models.question import Question, QuestionOption, Topic

__all__ = [
    "AttemptLog",
    "Base",
    "Card",
    "Learner",
    "LearnerBadge",
    "LearnerProgress",
    "Question",
    "QuestionOption",
    "Topic",
]
