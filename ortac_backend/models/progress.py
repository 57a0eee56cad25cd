"""Per-learner XP, level, streak and badge state."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ortac_backend.config import utcnow
from ortac_backend.models.base import Base, TimestampMixin


class LearnerProgress(Base, TimestampMixin):
    """Durable progression state, one row per learner.

    ``version`` is SQLAlchemy's optimistic concurrency counter: an UPDATE from a
    stale copy of the row matches zero rows and raises ``StaleDataError``.
    """

    __tablename__ = "learner_progress"

    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    chapters_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quizzes_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    certificates_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_cards_reviewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    learner: Mapped["Learner"] = relationship(back_populates="progress")  # type: ignore[name-defined] # noqa: F821


class LearnerBadge(Base):
    __tablename__ = "learner_badges"
    __table_args__ = (UniqueConstraint("learner_id", "badge_id", name="uq_learner_badge"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False, index=True)
    badge_id: Mapped[str] = mapped_column(String(50), nullable=False)  # catalog id, see srs.badges
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
