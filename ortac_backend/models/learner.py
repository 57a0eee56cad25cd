from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ortac_backend.config import settings
from ortac_backend.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    __tablename__ = "learners"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default=settings.default_timezone
    )  # IANA name, used to find the learner's local "today" for streaks

    cards: Mapped[list["Card"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    attempt_logs: Mapped[list["AttemptLog"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    progress: Mapped["LearnerProgress"] = relationship(back_populates="learner", uselist=False)  # type: ignore[name-defined] # noqa: F821
