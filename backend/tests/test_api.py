"""HTTP-level tests: routing, error mapping and post-commit event delivery."""

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.main import app
from app.services.events import EventOutbox, GoalCompleted, MilestoneCompleted

OTHER_USER = {"X-User-Id": "2"}


@pytest_asyncio.fixture
async def outbox(monkeypatch, session_factory, file_session: AsyncSession, file_seed) -> EventOutbox:
    """Point the app at the test database with a fresh outbox; seeds users 1 and 2."""
    await file_seed.user()
    await file_seed.user()
    await file_session.commit()

    box = EventOutbox()
    monkeypatch.setattr(deps, "get_db_session", session_factory)
    monkeypatch.setattr(app.state, "outbox", box, raising=False)
    monkeypatch.setattr(app.state, "text_client", None, raising=False)
    return box


@pytest_asyncio.fixture
async def client(outbox: EventOutbox) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create_goal(client: httpx.AsyncClient) -> tuple[int, int]:
    response = await client.post(
        "/api/roadmaps",
        json={"title": "Five year plan", "start_date": "2025-01-01T00:00:00", "status": "active"},
    )
    assert response.status_code == 201
    roadmap_id = response.json()["id"]

    response = await client.post(
        f"/api/roadmaps/{roadmap_id}/goals",
        json={"category": "career", "title": "Become a staff engineer", "target_year": 2},
    )
    assert response.status_code == 201
    return roadmap_id, response.json()["id"]


async def _create_milestone(client: httpx.AsyncClient, goal_id: int, title: str) -> int:
    response = await client.post(
        f"/api/roadmaps/goals/{goal_id}/milestones",
        json={"title": title, "due_date": "2030-01-01T00:00:00", "estimated_effort_hours": 10},
    )
    assert response.status_code == 201
    return response.json()["id"]


@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_roadmap_defaults_to_five_years(client: httpx.AsyncClient) -> None:
    response = await client.post(
        "/api/roadmaps", json={"title": "Five year plan", "start_date": "2024-02-29T00:00:00"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["end_date"] == "2029-02-28T00:00:00"
    assert body["status"] == "draft"
    assert body["progress_percentage"] == 0.0


@pytest.mark.asyncio
async def test_completing_milestones_rolls_up_and_queues_events(
    client: httpx.AsyncClient, outbox: EventOutbox
) -> None:
    roadmap_id, goal_id = await _create_goal(client)
    first = await _create_milestone(client, goal_id, "Lead a cross-team project")
    second = await _create_milestone(client, goal_id, "Mentor two engineers")

    response = await client.post(f"/api/roadmaps/milestones/{first}/complete")
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["completion_date"] is not None

    goal = (await client.get(f"/api/roadmaps/goals/{goal_id}")).json()
    assert goal["completion_percentage"] == 50.0
    assert goal["status"] == "in_progress"

    await client.post(f"/api/roadmaps/milestones/{second}/complete")
    roadmap = (await client.get(f"/api/roadmaps/{roadmap_id}")).json()
    assert roadmap["progress_percentage"] == 100.0

    queued = [outbox._queue.get_nowait() for _ in range(outbox.pending())]
    assert queued == [
        MilestoneCompleted(milestone_id=first, goal_id=goal_id),
        MilestoneCompleted(milestone_id=second, goal_id=goal_id),
        GoalCompleted(goal_id=goal_id, roadmap_id=roadmap_id),
    ]

    stats = (await client.get(f"/api/roadmaps/{roadmap_id}/stats")).json()
    assert stats["total_goals"] == 1


@pytest.mark.asyncio
async def test_other_users_resources_are_not_found(
    client: httpx.AsyncClient, outbox: EventOutbox
) -> None:
    roadmap_id, goal_id = await _create_goal(client)
    milestone_id = await _create_milestone(client, goal_id, "Lead a cross-team project")

    foreign = await client.get(f"/api/roadmaps/{roadmap_id}", headers=OTHER_USER)
    missing = await client.get("/api/roadmaps/9999", headers=OTHER_USER)
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json() == {"detail": "Roadmap not found"}

    response = await client.post(
        f"/api/roadmaps/milestones/{milestone_id}/complete", headers=OTHER_USER
    )
    assert response.status_code == 404
    assert outbox.pending() == 0

    milestone = (await client.get(f"/api/roadmaps/goals/{goal_id}/milestones")).json()[0]
    assert milestone["status"] == "not_started"


@pytest.mark.asyncio
async def test_invalid_user_header(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/roadmaps", headers={"X-User-Id": "abc"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_request_validation(client: httpx.AsyncClient) -> None:
    response = await client.post(
        "/api/roadmaps", json={"title": "Plan", "start_date": "2025-01-01T00:00:00"}
    )
    assert response.status_code == 422

    response = await client.post(
        "/api/roadmaps",
        json={
            "title": "Backwards plan",
            "start_date": "2025-01-01T00:00:00",
            "end_date": "2024-01-01T00:00:00",
        },
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_analytics_endpoints(client: httpx.AsyncClient) -> None:
    roadmap_id, _ = await _create_goal(client)

    assert (await client.get("/api/analytics/velocity", params={"days": 0})).status_code == 422
    assert (await client.get("/api/analytics/velocity", params={"days": 400})).status_code == 422

    velocity = (await client.get("/api/analytics/velocity", params={"days": 14})).json()
    assert len(velocity["weekly_breakdown"]) == 2
    assert velocity["trend"] == "stable"

    streak = (await client.get("/api/analytics/streak")).json()
    assert streak == {
        "current_streak": 0,
        "longest_streak": 0,
        "last_active_date": None,
        "total_active_days": 0,
    }

    prediction = (await client.get(f"/api/analytics/roadmaps/{roadmap_id}/prediction")).json()
    assert prediction["predicted_completion_date"] is None
    assert prediction["confidence"] == "low"

    foreign = await client.get(
        f"/api/analytics/roadmaps/{roadmap_id}/prediction", headers=OTHER_USER
    )
    assert foreign.status_code == 404

    for path in ("/api/analytics/bottlenecks", "/api/analytics/categories", "/api/analytics/report"):
        assert (await client.get(path)).status_code == 200


@pytest.mark.asyncio
async def test_coaching_endpoints_without_text_client(client: httpx.AsyncClient) -> None:
    _, goal_id = await _create_goal(client)

    coaching = (await client.get("/api/coaching/weekly")).json()
    assert coaching["source"] == "fallback"
    assert coaching["type"] == "weekly_coaching"

    recommendations = (await client.get("/api/coaching/recommendations")).json()
    assert "career" not in recommendations["missing_categories"]

    response = await client.post(f"/api/coaching/goals/{goal_id}/milestone-suggestions")
    assert response.status_code == 200
    assert len(response.json()) == 4


@pytest.mark.asyncio
async def test_roadmap_task_flow(client: httpx.AsyncClient) -> None:
    _, goal_id = await _create_goal(client)
    milestone_id = await _create_milestone(client, goal_id, "Lead a cross-team project")

    response = await client.post(
        f"/api/roadmap-tasks/milestones/{milestone_id}/generate", json={"task_count": 3}
    )
    assert response.status_code == 201
    tasks = response.json()
    assert len(tasks) == 3
    assert {t["source"] for t in tasks} == {"system_suggested"}

    response = await client.post(
        f"/api/roadmap-tasks/milestones/{milestone_id}/generate", json={"task_count": 50}
    )
    assert response.status_code == 422

    done = (await client.post(f"/api/roadmap-tasks/{tasks[0]['id']}/complete")).json()
    assert done["status"] == "completed"

    response = await client.post(f"/api/roadmap-tasks/{tasks[1]['id']}/convert")
    assert response.status_code == 201
    planner_task = response.json()
    assert planner_task["title"] == tasks[1]["title"]

    response = await client.post(
        f"/api/roadmap-tasks/{tasks[2]['id']}/link/{planner_task['id']}"
    )
    assert response.json()["task_id"] == planner_task["id"]

    response = await client.post(f"/api/roadmap-tasks/{tasks[2]['id']}/complete", headers=OTHER_USER)
    assert response.status_code == 404
