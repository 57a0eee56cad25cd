"""Shared fixtures: an in-memory database and a small seeded question pool."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

# The CLI and /health use the module-level engine; keep it away from ./ortac.db
os.environ.setdefault(
    "ORTAC_DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'ortac_test.db'}",
)

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ortac_backend.models import Base, Learner, Question, QuestionOption, Topic  # noqa: E402


@dataclass
class SeededPool:
    learner_id: int
    topic_id: int
    empty_topic_id: int
    by_tier: dict[str, list[int]] = field(default_factory=dict)
    correct: dict[int, int] = field(default_factory=dict)  # question id -> correct option id
    wrong: dict[int, int] = field(default_factory=dict)  # question id -> a wrong option id


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(db) -> SeededPool:
    """One learner, a topic with 2 easy, 3 medium and 2 hard questions, and an empty topic."""
    learner = Learner(name="Test Learner", timezone="UTC")
    topic = Topic(code="algebra", title="Algebra")
    empty = Topic(code="empty", title="Nothing here")
    db.add_all([learner, topic, empty])
    await db.flush()

    pool = SeededPool(learner_id=learner.id, topic_id=topic.id, empty_topic_id=empty.id)
    for tier, count in (("easy", 2), ("medium", 3), ("hard", 2)):
        for n in range(count):
            question = Question(topic_id=topic.id, prompt=f"{tier} question {n + 1}", difficulty=tier)
            db.add(question)
            await db.flush()
            right = QuestionOption(question_id=question.id, text="right", is_correct=True, position=0)
            wrong = QuestionOption(question_id=question.id, text="wrong", is_correct=False, position=1)
            db.add_all([right, wrong])
            await db.flush()
            pool.by_tier.setdefault(tier, []).append(question.id)
            pool.correct[question.id] = right.id
            pool.wrong[question.id] = wrong.id

    await db.commit()
    return pool
