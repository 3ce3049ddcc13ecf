"""
API endpoint tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from repovoice.api.deps import get_current_user_id
from repovoice.api.main import app
from repovoice.core.database import get_db
from repovoice.schemas.edit_metadata import ContentFormat
from repovoice.schemas.style_profile import StyleProfile


@pytest_asyncio.fixture
async def client(services, session_factory, mock_user_id) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client bound to the test database and services."""
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user_id] = lambda: mock_user_id
    app.state.learning = services

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    del app.state.learning


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "endpoints" in data


@pytest.mark.asyncio
async def test_save_single_post_edit(client: AsyncClient, fake_queue, create_user, create_content, mock_user_id):
    await create_user(mock_user_id)
    content_id = await create_content(mock_user_id, generated_text="We leverage synergies.")

    response = await client.post(
        f"/api/v1/content/{content_id}/edits",
        json={"edited_text": "We ship things \U0001F680"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["content_id"] == content_id
    assert data["learning_queued"] is True
    assert data["edit_metadata"]["emoji_changes"]["added"] == 1
    assert fake_queue.jobs[0]["job_id"] == data["job_id"]


@pytest.mark.asyncio
async def test_edits_in_open_batch_are_recorded_without_job(
    client: AsyncClient, services, create_user, create_content, mock_user_id
):
    await create_user(mock_user_id)
    responses = []
    for _ in range(3):
        content_id = await create_content(mock_user_id, generated_text="Original post.")
        responses.append(
            await client.post(f"/api/v1/content/{content_id}/edits", json={"edited_text": "Edited post."})
        )

    assert [r.json()["learning_queued"] for r in responses] == [True, True, False]
    assert await services.store.get_edit_count(mock_user_id) == 3


@pytest.mark.asyncio
async def test_save_thread_edit(client: AsyncClient, create_user, create_content, mock_user_id):
    await create_user(mock_user_id)
    content_id = await create_content(
        mock_user_id,
        content_format=ContentFormat.MINI_THREAD,
        tweets=["First tweet about shipping", "Second tweet about testing"],
    )

    response = await client.post(
        f"/api/v1/content/{content_id}/edits",
        json={
            "edited_tweets": [
                {"position": 0, "text": "First tweet about shipping \U0001F680"},
                {"position": 1, "text": "Second tweet about testing \U0001F525"},
            ]
        },
    )

    assert response.status_code == 200
    assert response.json()["edit_metadata"]["emoji_changes"]["added"] == 2


@pytest.mark.asyncio
async def test_thread_edit_requires_tweets(client: AsyncClient, create_user, create_content, mock_user_id):
    await create_user(mock_user_id)
    content_id = await create_content(
        mock_user_id, content_format=ContentFormat.FULL_THREAD, tweets=["Only tweet"]
    )

    response = await client.post(f"/api/v1/content/{content_id}/edits", json={"edited_text": "Flat text"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_empty_edit_rejected(client: AsyncClient, create_user, create_content, mock_user_id):
    await create_user(mock_user_id)
    content_id = await create_content(mock_user_id)

    assert (await client.post(f"/api/v1/content/{content_id}/edits", json={})).status_code == 422

    response = await client.post(f"/api/v1/content/{content_id}/edits", json={"edited_text": "   "})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_edit_missing_content(client: AsyncClient):
    response = await client.post("/api/v1/content/missing/edits", json={"edited_text": "Edited"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_edit_other_users_content(client: AsyncClient, create_user, create_content):
    owner = await create_user()
    content_id = await create_content(owner)

    response = await client.post(f"/api/v1/content/{content_id}/edits", json={"edited_text": "Edited"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_learning_job(client: AsyncClient, create_user, create_content, mock_user_id):
    await create_user(mock_user_id)
    content_id = await create_content(mock_user_id, generated_text="Original post.")
    saved = await client.post(f"/api/v1/content/{content_id}/edits", json={"edited_text": "Edited post."})

    response = await client.get(f"/api/v1/learning/jobs/{saved.json()['job_id']}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending"
    assert data["content_id"] == content_id
    assert data["attempts"] == 0


@pytest.mark.asyncio
async def test_get_missing_learning_job(client: AsyncClient):
    response = await client.get("/api/v1/learning/jobs/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_learning_metrics(client: AsyncClient):
    response = await client.get("/api/v1/learning/metrics")
    assert response.status_code == 200
    data = response.json()
    assert data["total_jobs"] == 0
    assert data["jobs_by_status"]["failed"] == 0


@pytest.mark.asyncio
async def test_profile_versions_and_evolution(client: AsyncClient, create_user, mock_user_id):
    await create_user(mock_user_id, profile=StyleProfile(sample_posts=["A sample post."]))

    versions = await client.get("/api/v1/profile/versions")
    assert versions.status_code == 200
    assert versions.json() == {"versions": [], "total": 0}

    evolution = await client.get("/api/v1/profile/evolution")
    assert evolution.status_code == 200
    assert evolution.json()["evolution_score"] == 36


@pytest.mark.asyncio
async def test_evolution_without_profile(client: AsyncClient, create_user, mock_user_id):
    await create_user(mock_user_id, profile=None)

    response = await client.get("/api/v1/profile/evolution")

    assert response.status_code == 404
