"""Review card model linking learners to questions."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ortac_backend.config import utcnow
from ortac_backend.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A review card with SM-2 scheduling state for a learner-question pair."""

    __tablename__ = "cards"
    __table_args__ = (UniqueConstraint("learner_id", "question_id", name="uq_card_learner_question"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id"), nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0=Fail .. 3=Easy

    learner: Mapped["Learner"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
    question: Mapped["Question"] = relationship()  # type: ignore[name-defined] # noqa: F821
