import itertools
import json
from types import SimpleNamespace

import pytest
from sqlalchemy import select, update

from app.models.roadmap import Roadmap, RoadmapDocumentation
from app.models.user_progress import UserProgress
from app.services import roadmap_generator
from tests.conftest import sample_roadmap_json


async def test_generate_triggers_workflow(client, auth_headers, workflow):
    response = await client.post("/api/roadmaps/generate", headers=auth_headers, json={
        "field": "Data Science", "level": "Beginner", "customRequirements": "Focus on Python",
    })

    assert response.status_code == 202
    body = response.json()
    assert body["message"] == "Roadmap generation started"
    roadmap = body["data"]["roadmap"]
    assert roadmap["status"] == "generating"
    assert roadmap["workflowId"] == "wf-123"
    assert roadmap["roadmap_json"]["id"].startswith("data-science-beginner-")
    assert roadmap["roadmap_json"]["title"] == "Data Science Career Path - Beginner Level"
    assert body["data"]["progress"]["phases"] == []
    assert body["data"]["estimatedTime"] == "2-3 minutes"

    sent = workflow.requests[0]
    assert str(sent.url) == "http://n8n.local/webhook/roadmap"
    assert sent.headers["Authorization"] == "Bearer test-webhook-secret"
    payload = json.loads(sent.content)
    assert payload["field"] == "Data Science"
    assert payload["level"] == "Beginner"
    assert payload["roadmapId"] == roadmap["roadmap_json"]["id"]
    assert payload["customRequirements"] == "Focus on Python"
    assert payload["callbackUrl"] == "http://api.local/api/roadmaps/webhook/n8n-callback"


async def test_generate_falls_back_to_generated_workflow_id(client, auth_headers, workflow):
    workflow.body = {"accepted": True}

    response = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                 json={"field": "DevOps", "level": "Expert"})

    assert response.json()["data"]["roadmap"]["workflowId"].startswith("workflow-")


async def test_generate_synchronous_response(client, auth_headers, generate, db_session):
    roadmap_id = await generate(auth_headers)

    response = await client.get(f"/api/roadmaps/{roadmap_id}", headers=auth_headers)

    data = response.json()["data"]
    assert data["roadmap"]["status"] == "completed"
    assert data["roadmap"]["workflowId"] == "wf-sync"
    assert data["roadmap"]["roadmap_doc"] == "# Data Science"
    assert data["roadmap"]["roadmap_json"]["metadata"]["aiModel"] == "gpt-4o"
    assert [p["phaseId"] for p in data["progress"]["phases"]] == ["phase-1", "phase-2"]
    assert data["documentation"]["markdownContent"] == "# Data Science"


async def test_generate_validation(client, auth_headers):
    response = await client.post("/api/roadmaps/generate", headers=auth_headers, json={
        "field": "Astrology", "level": "Beginner", "customRequirements": "x" * 501,
    })

    assert response.status_code == 400
    assert {e["field"] for e in response.json()["errors"]} == {"field", "customRequirements"}


async def test_generate_requires_auth(client):
    response = await client.post("/api/roadmaps/generate", json={"field": "DevOps", "level": "Beginner"})

    assert response.status_code == 401


async def test_generate_duplicate_is_conflict(client, auth_headers):
    await client.post("/api/roadmaps/generate", headers=auth_headers,
                      json={"field": "DevOps", "level": "Beginner"})
    response = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                 json={"field": "DevOps", "level": "Beginner"})

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "You already have a roadmap for this field and level"
    assert body["roadmap"]["roadmap_json"]["field"] == "DevOps"


async def test_generate_workflow_failure_marks_failed(client, auth_headers, workflow, db_session):
    workflow.status_code = 500
    workflow.body = {"error": "boom"}

    response = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                 json={"field": "DevOps", "level": "Beginner"})

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to trigger AI roadmap generation"
    roadmaps = (await db_session.execute(select(Roadmap))).scalars().all()
    assert [r.status for r in roadmaps] == ["failed"]
    assert (await db_session.execute(select(UserProgress))).scalars().all() == []


@pytest.mark.parametrize("data", [
    {"roadmap_json": sample_roadmap_json(), "roadmap_doc": None},
    {"roadmap_json": sample_roadmap_json(), "tokens": "a lot"},
], ids=["null-doc", "tokens-not-object"])
async def test_generate_with_invalid_sync_result_marks_failed(client, auth_headers, workflow, db_session,
                                                              monkeypatch, data):
    # Distinct roadmap ids for the retry
    monkeypatch.setattr(roadmap_generator, "time", SimpleNamespace(time=itertools.count(1_700_000_000).__next__))
    workflow.body = {"workflowId": "wf-sync", "data": data}

    response = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                 json={"field": "DevOps", "level": "Beginner"})

    assert response.status_code == 500
    assert response.json()["message"] == "AI roadmap generation returned an invalid roadmap"
    roadmaps = (await db_session.execute(select(Roadmap))).scalars().all()
    assert [r.status for r in roadmaps] == ["failed"]
    assert (await db_session.execute(select(UserProgress))).scalars().all() == []

    workflow.body = {"workflowId": "wf-123"}
    retry = await client.post("/api/roadmaps/generate", headers=auth_headers,
                              json={"field": "DevOps", "level": "Beginner"})
    assert retry.status_code == 202


async def test_callback_completes_roadmap(client, auth_headers, callback, db_session):
    created = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                json={"field": "Data Science", "level": "Beginner"})
    roadmap_id = created.json()["data"]["roadmap"]["roadmap_json"]["id"]

    response = await callback({
        "roadmapId": roadmap_id,
        "status": "completed",
        "workflowId": "wf-callback",
        "data": {
            "roadmap_json": sample_roadmap_json(),
            "roadmap_doc": "# Generated",
            "tokens": {"total": 1234},
        },
    })

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Webhook processed successfully"}

    roadmap = (await db_session.execute(select(Roadmap))).scalar_one()
    assert roadmap.status == "completed"
    assert roadmap.workflow_id == "wf-callback"
    assert roadmap.total_steps() == 3
    # Generated metadata is merged over the placeholder's
    assert roadmap.roadmap_metadata["aiModel"] == "gpt-4o"
    assert roadmap.roadmap_metadata["tags"] == ["data"]

    progress = (await db_session.execute(select(UserProgress))).scalar_one()
    assert [len(p["steps"]) for p in progress.phases] == [2, 1]

    docs = (await db_session.execute(select(RoadmapDocumentation))).scalar_one()
    assert docs.markdown_content == "# Generated"
    assert docs.ai_model == "gpt-4o"
    assert docs.tokens == {"total": 1234}


async def test_callback_failed_status(client, auth_headers, callback):
    created = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                json={"field": "DevOps", "level": "Beginner"})
    roadmap_id = created.json()["data"]["roadmap"]["roadmap_json"]["id"]

    await callback({"roadmapId": roadmap_id, "status": "failed", "error": "model timeout"})

    status = await client.get(f"/api/roadmaps/{roadmap_id}/status", headers=auth_headers)
    assert status.json()["data"]["status"] == "failed"


async def test_callback_rejects_bad_secret(client, callback):
    response = await callback({"roadmapId": "whatever", "status": "failed"}, secret="wrong")

    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized webhook request"


async def test_callback_unknown_roadmap(client, callback):
    response = await callback({"roadmapId": "missing-roadmap", "status": "failed"})

    assert response.status_code == 404


async def test_callback_rejects_unknown_status(client, callback):
    response = await callback({"roadmapId": "whatever", "status": "queued"})

    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == ["status"]


def bad_step_difficulty():
    roadmap_json = sample_roadmap_json()
    roadmap_json["phases"][0]["steps"][0]["difficulty"] = 9
    return {"roadmap_json": roadmap_json}


@pytest.mark.parametrize("data", [
    bad_step_difficulty(),
    {"roadmap_json": "not-a-document"},
    {"roadmap_json": sample_roadmap_json(), "roadmap_doc": None},
    {"roadmap_doc": "# Missing document"},
], ids=["step-difficulty", "document-not-object", "null-doc", "no-document"])
async def test_callback_with_malformed_roadmap(client, auth_headers, callback, data):
    created = await client.post("/api/roadmaps/generate", headers=auth_headers,
                                json={"field": "DevOps", "level": "Beginner"})
    roadmap_id = created.json()["data"]["roadmap"]["roadmap_json"]["id"]

    response = await callback({"roadmapId": roadmap_id, "status": "completed", "data": data})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid roadmap data"
    status = await client.get(f"/api/roadmaps/{roadmap_id}/status", headers=auth_headers)
    assert status.json()["data"]["status"] == "failed"


async def test_list_roadmaps_with_progress(client, auth_headers, generate):
    await generate(auth_headers, field="Data Science")
    await generate(auth_headers, field="DevOps", complete=False)

    response = await client.get("/api/roadmaps", headers=auth_headers)

    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
    assert [r["roadmap_json"]["field"] for r in body["data"]] == ["DevOps", "Data Science"]
    assert all(r["progress"] is not None for r in body["data"])

    filtered = await client.get("/api/roadmaps", headers=auth_headers, params={"status": "completed"})
    assert [r["roadmap_json"]["field"] for r in filtered.json()["data"]] == ["Data Science"]


async def test_private_roadmap_is_forbidden_to_others(client, generate, register, db_session):
    owner_headers, _ = await register(email="owner@example.com")
    other_headers, _ = await register(email="other@example.com")
    roadmap_id = await generate(owner_headers)

    forbidden = await client.get(f"/api/roadmaps/{roadmap_id}", headers=other_headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "Access denied"

    await db_session.execute(update(Roadmap).where(Roadmap.roadmap_id == roadmap_id).values(is_public=True))
    await db_session.commit()

    public = await client.get(f"/api/roadmaps/{roadmap_id}", headers=other_headers)
    assert public.status_code == 200
    assert public.json()["data"]["progress"] is None


async def test_get_unknown_roadmap(client, auth_headers):
    response = await client.get("/api/roadmaps/no-such-roadmap", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Roadmap not found"


async def test_progress_actions(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)
    url = f"/api/roadmaps/{roadmap_id}/progress"

    completed = await client.put(url, headers=auth_headers, json={
        "action": "complete_step", "phaseId": "phase-1", "stepId": "step-1",
        "timeSpent": 2, "rating": 4, "notes": "done",
    })
    assert completed.status_code == 200
    progress = completed.json()["data"]
    assert progress["overallProgress"] == 33
    assert progress["stats"]["totalTimeSpent"] == 2
    assert progress["achievements"][0]["type"] == "first_step"

    noted = await client.put(url, headers=auth_headers, json={
        "action": "add_note", "phaseId": "phase-1", "stepId": "step-2", "notes": "review later",
    })
    assert noted.json()["data"]["phases"][0]["steps"][1]["notes"] == "review later"

    rated = await client.put(url, headers=auth_headers, json={
        "action": "rate_step", "phaseId": "phase-1", "stepId": "step-2", "rating": 5,
    })
    assert rated.json()["data"]["phases"][0]["steps"][1]["rating"] == 5

    undone = await client.put(url, headers=auth_headers, json={
        "action": "uncomplete_step", "phaseId": "phase-1", "stepId": "step-1",
    })
    assert undone.json()["data"]["overallProgress"] == 0


async def test_progress_action_errors(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)
    url = f"/api/roadmaps/{roadmap_id}/progress"

    bad_rating = await client.put(url, headers=auth_headers, json={
        "action": "rate_step", "phaseId": "phase-1", "stepId": "step-1", "rating": 7,
    })
    assert bad_rating.status_code == 400
    assert bad_rating.json()["message"] == "Rating must be between 1 and 5"

    missing_rating = await client.put(url, headers=auth_headers, json={
        "action": "rate_step", "phaseId": "phase-1", "stepId": "step-1",
    })
    assert missing_rating.status_code == 400

    unknown_step = await client.put(url, headers=auth_headers, json={
        "action": "complete_step", "phaseId": "phase-1", "stepId": "step-99",
    })
    assert unknown_step.status_code == 404
    assert unknown_step.json()["message"] == "Step not found"

    bad_action = await client.put(url, headers=auth_headers, json={
        "action": "skip_step", "phaseId": "phase-1", "stepId": "step-1",
    })
    assert bad_action.status_code == 400

    no_progress = await client.put("/api/roadmaps/other-roadmap/progress", headers=auth_headers, json={
        "action": "complete_step", "phaseId": "phase-1", "stepId": "step-1",
    })
    assert no_progress.status_code == 404
    assert no_progress.json()["message"] == "Progress record not found"


async def test_rate_roadmap(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.post(f"/api/roadmaps/{roadmap_id}/rate", headers=auth_headers,
                                 json={"rating": 4, "feedback": "Clear and practical"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["roadmap"]["rating"] == {"average": 4.0, "count": 1}
    assert data["userRating"] == {"rating": 4, "feedback": "Clear and practical"}

    progress = await client.get(f"/api/progress/{roadmap_id}", headers=auth_headers)
    assert progress.json()["data"]["progress"]["roadmapRating"]["rating"] == 4


async def test_rate_roadmap_validation(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.post(f"/api/roadmaps/{roadmap_id}/rate", headers=auth_headers, json={"rating": 0})

    assert response.status_code == 400


async def test_delete_roadmap(client, generate, register, db_session):
    owner_headers, _ = await register(email="owner@example.com")
    other_headers, _ = await register(email="other@example.com")
    roadmap_id = await generate(owner_headers)

    not_owner = await client.delete(f"/api/roadmaps/{roadmap_id}", headers=other_headers)
    assert not_owner.status_code == 404

    response = await client.delete(f"/api/roadmaps/{roadmap_id}", headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Roadmap deleted successfully"

    assert (await db_session.execute(select(Roadmap))).scalars().all() == []
    assert (await db_session.execute(select(UserProgress))).scalars().all() == []
    assert (await db_session.execute(select(RoadmapDocumentation))).scalars().all() == []


async def test_meta_fields(client, auth_headers, generate, db_session):
    roadmap_id = await generate(auth_headers)
    await db_session.execute(
        update(Roadmap).where(Roadmap.roadmap_id == roadmap_id).values(rating_average=4.26, rating_count=3)
    )
    await db_session.commit()

    response = await client.get("/api/roadmaps/meta/fields")

    fields = {f["name"]: f for f in response.json()["data"]}
    assert len(fields) == 10
    assert fields["Data Science"] == {
        "name": "Data Science", "slug": "data-science", "roadmapCount": 1, "averageRating": 4.3,
    }
    assert fields["DevOps"]["roadmapCount"] == 0
    assert fields["DevOps"]["averageRating"] == 0


async def test_meta_popular(client, auth_headers, generate, db_session):
    popular_id = await generate(auth_headers, field="Data Science")
    few_ratings_id = await generate(auth_headers, field="DevOps")
    await db_session.execute(
        update(Roadmap).where(Roadmap.roadmap_id == popular_id)
        .values(is_public=True, rating_average=4.8, rating_count=12)
    )
    await db_session.execute(
        update(Roadmap).where(Roadmap.roadmap_id == few_ratings_id)
        .values(is_public=True, rating_average=5.0, rating_count=2)
    )
    await db_session.commit()

    response = await client.get("/api/roadmaps/meta/popular")

    data = response.json()["data"]
    assert [r["roadmap_json"]["id"] for r in data] == [popular_id]
    assert data[0]["owner"]["name"] == "Ada Lovelace"

    too_many = await client.get("/api/roadmaps/meta/popular", params={"limit": 51})
    assert too_many.status_code == 400
