from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ortac_backend.config import utcnow
from ortac_backend.models.base import Base


class AttemptLog(Base):
    __tablename__ = "attempt_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False, index=True)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id"), nullable=False)
    topic_id: Mapped[int] = mapped_column(ForeignKey("topics.id"), nullable=False, index=True)
    session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)  # None in review mode
    correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty_tier: Mapped[str] = mapped_column(String(10), nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Fail, 1=Hard, 2=Good, 3=Easy
    xp_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ease_after: Mapped[float] = mapped_column(Float, nullable=False)
    interval_after: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    learner: Mapped["Learner"] = relationship(back_populates="attempt_logs")  # type: ignore[name-defined] # noqa: F821
