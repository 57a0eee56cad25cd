"""Tests for the HTTP API."""

import pytest
from httpx import ASGITransport, AsyncClient

from ortac_backend.database import get_session
from ortac_backend.main import app


@pytest.fixture
async def client(session_factory, seeded):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def start(client, seeded, size: int = 3) -> str:
    response = await client.post(
        "/api/session/start",
        params={"learner_id": seeded.learner_id, "topic_id": seeded.topic_id, "size": size},
    )
    assert response.status_code == 200
    return response.json()["session_id"]


class TestSessionAPI:
    @pytest.mark.asyncio
    async def test_start(self, client, seeded) -> None:
        response = await client.post(
            "/api/session/start",
            params={"learner_id": seeded.learner_id, "topic_id": seeded.topic_id},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_questions"] == 7
        assert body["review_questions"] == 0
        assert body["starting_tier"] == "medium"

    @pytest.mark.asyncio
    async def test_start_unknown_learner(self, client, seeded) -> None:
        response = await client.post(
            "/api/session/start", params={"learner_id": 999, "topic_id": seeded.topic_id}
        )
        assert response.status_code == 404
        assert response.json() == {"error": "invalid_reference", "detail": "Learner not found", "learner_id": 999}

    @pytest.mark.asyncio
    async def test_next_hides_answers(self, client, seeded) -> None:
        session_id = await start(client, seeded)
        response = await client.get(f"/api/session/next/{session_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["remaining"] == 3
        assert {o["text"] for o in body["options"]} == {"right", "wrong"}
        assert all(set(o) == {"id", "text"} for o in body["options"])

    @pytest.mark.asyncio
    async def test_answer_and_complete(self, client, seeded) -> None:
        session_id = await start(client, seeded, size=1)
        question = (await client.get(f"/api/session/next/{session_id}")).json()

        response = await client.post(
            f"/api/session/answer/{session_id}",
            json={"option_id": seeded.correct[question["question_id"]], "time_ms": 8000},
        )
        assert response.status_code == 200
        answer = response.json()
        assert answer["correct"]
        assert answer["quality"] == "easy"
        assert answer["interval_days"] == 1
        assert answer["session_complete"]
        assert answer["remaining"] == 0

        # Nothing left to ask
        response = await client.get(f"/api/session/next/{session_id}")
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_session_state"

        response = await client.post(f"/api/session/complete/{session_id}")
        assert response.status_code == 200
        summary = response.json()
        assert summary["status"] == "completed"
        assert summary["score_percent"] == 100
        assert "first_quiz" in {b["id"] for b in summary["badges_unlocked"]}

        # Completed sessions are dropped from the store
        response = await client.post(f"/api/session/complete/{session_id}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_option(self, client, seeded) -> None:
        session_id = await start(client, seeded)
        response = await client.post(
            f"/api/session/answer/{session_id}", json={"option_id": 12345, "time_ms": 1000}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "invalid_reference"

    @pytest.mark.asyncio
    async def test_abandon(self, client, seeded) -> None:
        session_id = await start(client, seeded)
        response = await client.post(f"/api/session/abandon/{session_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "abandoned"

    @pytest.mark.asyncio
    async def test_unknown_session(self, client, seeded) -> None:
        response = await client.get("/api/session/next/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found"


class TestReviewAPI:
    @pytest.mark.asyncio
    async def test_grade_and_due(self, client, seeded) -> None:
        question_id = seeded.by_tier["easy"][0]
        response = await client.post(
            f"/api/review/{seeded.learner_id}/grade", json={"question_id": question_id, "quality": 0}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["card"]["repetitions"] == 0
        assert body["card"]["interval_days"] == 1
        assert body["review_cards_reviewed"] == 1

        # Due tomorrow, not now
        response = await client.get(f"/api/review/{seeded.learner_id}/due")
        assert response.status_code == 200
        assert response.json()["cards"] == []

    @pytest.mark.asyncio
    async def test_negative_due_limit(self, client, seeded) -> None:
        response = await client.get(f"/api/review/{seeded.learner_id}/due", params={"limit": -1})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_grade_unknown_question(self, client, seeded) -> None:
        response = await client.post(
            f"/api/review/{seeded.learner_id}/grade", json={"question_id": 999, "quality": 2}
        )
        assert response.status_code == 404


class TestProgressAPI:
    @pytest.mark.asyncio
    async def test_milestone_and_progress(self, client, seeded) -> None:
        response = await client.post(
            f"/api/progress/{seeded.learner_id}/milestone", json={"milestone": "chapter_completed"}
        )
        assert response.status_code == 200
        assert response.json()["xp_gained"] == 125

        response = await client.get(f"/api/progress/{seeded.learner_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["total_xp"] == 125
        assert body["level"] == 2
        assert body["xp_into_level"] == 25
        assert body["badges"] == ["first_chapter", "xp_100"]

    @pytest.mark.asyncio
    async def test_unknown_milestone_is_rejected(self, client, seeded) -> None:
        response = await client.post(
            f"/api/progress/{seeded.learner_id}/milestone", json={"milestone": "graduated"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_badge_catalog(self, client, seeded) -> None:
        response = await client.get("/api/progress/badges")
        assert response.status_code == 200
        badges = response.json()
        assert len(badges) == 16
        assert badges[0]["category"] == "progress"
