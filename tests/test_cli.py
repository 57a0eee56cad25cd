"""Tests for CLI commands (non-interactive paths)."""

import json
import sys
from pathlib import Path

import pytest
from sqlalchemy import func, select

from ortac_backend.database import async_session
from ortac_backend.models import Question, Topic
from ortac_cli.__main__ import ensure_db, ensure_learner, main, seed_topics

SAMPLE = Path(__file__).parent.parent / "data" / "sample_topics.json"


@pytest.mark.asyncio
async def test_ensure_db() -> None:
    """Database tables can be created."""
    await ensure_db()


@pytest.mark.asyncio
async def test_ensure_learner() -> None:
    """Default learner is created on first call."""
    await ensure_db()
    learner_id = await ensure_learner()
    assert learner_id >= 1

    # Second call returns same ID
    learner_id2 = await ensure_learner()
    assert learner_id2 == learner_id


@pytest.mark.asyncio
async def test_seed_is_idempotent() -> None:
    await ensure_db()
    data = json.loads(SAMPLE.read_text(encoding="utf-8"))
    await seed_topics(data)

    # Everything already exists the second time round
    assert await seed_topics(data) == (0, 0)

    async with async_session() as db:
        topic = (await db.execute(select(Topic).where(Topic.code == "python-basics"))).scalar_one()
        questions = (
            await db.execute(select(func.count(Question.id)).where(Question.topic_id == topic.id))
        ).scalar_one()
    assert questions == len(data["topics"][0]["questions"])


def test_sample_questions_have_one_answer() -> None:
    data = json.loads(SAMPLE.read_text(encoding="utf-8"))
    for topic in data["topics"]:
        for question in topic["questions"]:
            assert sum(1 for o in question["options"] if o.get("correct")) == 1, question["prompt"]
            assert question.get("difficulty") in ("easy", "medium", "hard")


def test_main_without_command_prints_help(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["ortac_cli"])
    main()
    assert "quiz" in capsys.readouterr().out
