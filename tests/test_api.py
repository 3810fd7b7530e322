"""
API tests through FastAPI's TestClient. Repositories and the pipeline are
overridden with the in-memory fixtures; background tasks run inline.
"""
import sys
import os
import pytest
import requests
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import api_server
from api_server import app, get_pipeline, get_repository, get_timeline_repository

STORY_TEXT = "Mara runs the last lighthouse on the coast. A stranger washes ashore with her brother's compass."

HEADERS = {"X-User-Id": "user-1", "X-User-Email": "ada@example.com"}


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


@pytest.fixture
def client(repository, timelines, pipeline):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_timeline_repository] = lambda: timelines
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    api_server.story_event_history.clear()


def create(client, auto_process=True, **fields):
    body = {"title": "The Last Light", "full_story_text": STORY_TEXT, "auto_process": auto_process, **fields}
    response = client.post("/api/stories", json=body, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


class TestStories:

    def test_identity_required(self, client):
        assert client.get("/api/stories").status_code == 401

    def test_create_without_processing(self, client):
        body = create(client, auto_process=False)
        assert body["status"] == "created"
        assert body["story"]["status"] == "new"
        assert body["ws_url"] == f"/ws/{body['story']['id']}"

    def test_create_runs_pipeline(self, client):
        body = create(client)
        story_id = body["story"]["id"]
        assert body["status"] == "processing"

        story = client.get(f"/api/stories/{story_id}", headers=HEADERS).json()
        assert story["status"] == "chapterized"
        assert story["genre"] == "Drama"

        chapters = client.get(f"/api/stories/{story_id}/chapters", headers=HEADERS).json()
        assert [c["chapter_number"] for c in chapters] == [1, 2, 3, 4]
        characters = client.get(f"/api/stories/{story_id}/characters", headers=HEADERS).json()
        assert len(characters) == 2

        steps = [e["step"] for e in api_server.story_event_history[story_id]]
        assert steps[0] == "start"
        assert steps[-1] == "complete"

    def test_invalid_body(self, client):
        response = client.post("/api/stories", json={"title": ""}, headers=HEADERS)
        assert response.status_code == 422

    def test_other_users_story_is_not_found(self, client):
        story_id = create(client, auto_process=False)["story"]["id"]
        response = client.get(f"/api/stories/{story_id}", headers={"X-User-Id": "intruder"})
        assert response.status_code == 404
        assert "Story not found" in response.json()["detail"]

    def test_list(self, client):
        create(client, auto_process=False)
        create(client, auto_process=False, title="Second")
        titles = sorted(s["title"] for s in client.get("/api/stories", headers=HEADERS).json())
        assert titles == ["Second", "The Last Light"]

    def test_status_logs_and_conversations(self, client):
        story_id = create(client)["story"]["id"]

        status = client.get(f"/api/stories/{story_id}/status", headers=HEADERS).json()
        assert status["can_resume"] is False
        assert status["phases"]["phase3_narrative"]["status"] == "completed"

        logs = client.get(f"/api/stories/{story_id}/logs", headers=HEADERS).json()
        assert {l["phase_name"] for l in logs} >= {"phase1_storyDNA", "phase5_coverImage"}

        messages = client.get(f"/api/stories/{story_id}/conversations", headers=HEADERS).json()
        assert messages[0]["message_type"] == "system"

    def test_delete(self, client):
        story_id = create(client)["story"]["id"]
        response = client.delete(f"/api/stories/{story_id}", headers=HEADERS)
        assert response.json() == {"deleted": story_id, "files_removed": 1}
        assert client.get(f"/api/stories/{story_id}", headers=HEADERS).status_code == 404


class TestResumeAndRetry:

    def test_retry_failed_story(self, client, fake_scenarist, repository):
        fake_scenarist.fail_on.add("phase4_production")
        story_id = create(client)["story"]["id"]
        assert repository.get_story(story_id).status == "failed_retry_needed"

        fake_scenarist.fail_on.clear()
        fake_scenarist.calls.clear()
        response = client.post(f"/api/stories/{story_id}/retry", headers=HEADERS)
        assert response.status_code == 202
        assert fake_scenarist.calls == ["phase4_production", "phase5_coverImage"]
        assert repository.get_story(story_id).status == "chapterized"

    def test_retry_rejected_for_chapterized(self, client):
        story_id = create(client)["story"]["id"]
        response = client.post(f"/api/stories/{story_id}/retry", headers=HEADERS)
        assert response.status_code == 409

    def test_resume_from_phase(self, client, fake_scenarist):
        story_id = create(client)["story"]["id"]
        fake_scenarist.calls.clear()
        response = client.post(
            f"/api/stories/{story_id}/resume", json={"from_phase": "phase4_production"}, headers=HEADERS
        )
        assert response.status_code == 202
        assert response.json()["from_phase"] == "phase4_production"
        assert fake_scenarist.calls == ["phase4_production", "phase5_coverImage"]

    def test_resume_without_body(self, client):
        story_id = create(client, auto_process=False)["story"]["id"]
        response = client.post(f"/api/stories/{story_id}/resume", headers=HEADERS)
        assert response.status_code == 202
        assert response.json()["from_phase"] == "auto"

    def test_resume_rejected_mid_production(self, client, repository):
        story_id = create(client)["story"]["id"]
        repository.set_status(story_id, "character_extraction")
        response = client.post(f"/api/stories/{story_id}/resume", headers=HEADERS)
        assert response.status_code == 409

    def test_reset(self, client):
        story_id = create(client)["story"]["id"]
        story = client.post(f"/api/stories/{story_id}/reset", headers=HEADERS).json()
        assert story["status"] == "new"
        assert story["processing_phases"] == {}
        assert story_id not in api_server.story_event_history


class TestDashboard:

    def test_free_tier_panels(self, client):
        body = client.get("/api/dashboard", headers=HEADERS).json()
        assert body["tier"] == "free"
        assert body["panels"] == ["stories", "portfolio"]
        assert body["user"]["username"] == "ada"

    def test_pro_tier_panels_and_stats(self, client, repository, fake_scenarist):
        repository.get_or_create_profile("user-1")
        repository.update_profile("user-1", subscription_tier="pro")
        create(client)
        fake_scenarist.fail_on.add("phase1_storyDNA")
        create(client, title="Broken")

        body = client.get("/api/dashboard", headers=HEADERS).json()
        assert "model_selector" in body["panels"]
        assert body["stats"] == {"stories": 2, "chapterized": 1, "processing": 0, "needs_retry": 1}

    def test_portfolio(self, client):
        create(client)
        cards = client.get("/api/portfolio", headers=HEADERS).json()
        assert len(cards) == 1
        card = cards[0]
        assert card["chapters_count"] == 4
        assert card["characters_count"] == 2
        assert card["category"] == "Drama"
        assert card["marketability_score"] == 7.5
        assert card["estimated_duration"] == 1200
        assert card["image"].startswith("/media/story-covers/")

    def test_onboarding(self, client):
        body = client.post(
            "/api/profile/onboarding-complete", json={"company_name": "Lumen", "job_role": "Director"}, headers=HEADERS
        ).json()
        assert body["onboarding_completed"] is True
        assert body["company_name"] == "Lumen"
        assert body["username"] == "ada"


class TestCatalogue:

    def test_styles(self, client):
        assert len(client.get("/api/styles").json()) == 9
        anime = client.get("/api/styles", params={"category": "anime"}).json()
        assert [s["id"] for s in anime] == ["studio-ghibli"]

    def test_models(self, client):
        body = client.get("/api/models").json()
        assert body["phases"]["phase1_storyDNA"]["model"] == "o3"
        assert any(m["id"] == "qwen/qwq-32b" for m in body["openrouter"])

    def test_cost_estimate(self, client):
        body = client.get("/api/cost-estimate", params={"include_image": "false"}).json()
        assert body["per_story"]["image_cost"] == 0
        assert len(body["per_story"]["phases"]) == 5

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestTimelinesApi:

    def test_project_timeline_track_clip(self, client):
        project = client.post("/api/projects", json={"title": "Lighthouse"}, headers=HEADERS)
        assert project.status_code == 201
        project_id = project.json()["id"]

        timeline = client.post(f"/api/projects/{project_id}/timelines", json={"title": "Cut 1"}, headers=HEADERS)
        timeline_id = timeline.json()["id"]
        track = client.post(f"/api/timelines/{timeline_id}/tracks", json={"name": "V1"}, headers=HEADERS).json()
        assert track["position"] == 0

        clip = client.post(f"/api/tracks/{track['id']}/clips", json={"start_time": 2, "duration": 3}, headers=HEADERS)
        assert clip.status_code == 201

        tree = client.get(f"/api/timelines/{timeline_id}", headers=HEADERS).json()
        assert tree["duration"] == 5
        assert tree["tracks"][0]["clips"][0]["start_time"] == 2

    def test_errors(self, client):
        assert client.post("/api/projects/nope/timelines", json={"title": "T"}, headers=HEADERS).status_code == 404
        project_id = client.post("/api/projects", json={"title": "P"}, headers=HEADERS).json()["id"]
        timeline_id = client.post(
            f"/api/projects/{project_id}/timelines", json={"title": "T"}, headers=HEADERS
        ).json()["id"]
        bad_track = client.post(f"/api/timelines/{timeline_id}/tracks", json={"name": "X", "type": "smell"}, headers=HEADERS)
        assert bad_track.status_code == 400
        track_id = client.post(f"/api/timelines/{timeline_id}/tracks", json={"name": "V"}, headers=HEADERS).json()["id"]
        bad_clip = client.post(f"/api/tracks/{track_id}/clips", json={"start_time": 0, "duration": 0}, headers=HEADERS)
        assert bad_clip.status_code == 400

    def test_other_users_cannot_touch_timeline(self, client):
        other = {"X-User-Id": "user-2"}
        project_id = client.post("/api/projects", json={"title": "P"}, headers=HEADERS).json()["id"]
        timeline_id = client.post(
            f"/api/projects/{project_id}/timelines", json={"title": "T"}, headers=HEADERS
        ).json()["id"]
        track_id = client.post(f"/api/timelines/{timeline_id}/tracks", json={"name": "V"}, headers=HEADERS).json()["id"]

        assert client.post(f"/api/projects/{project_id}/timelines", json={"title": "X"}, headers=other).status_code == 404
        assert client.post(f"/api/timelines/{timeline_id}/tracks", json={"name": "X"}, headers=other).status_code == 404
        clip = client.post(f"/api/tracks/{track_id}/clips", json={"start_time": 0, "duration": 1}, headers=other)
        assert clip.status_code == 404
        assert client.get(f"/api/timelines/{timeline_id}", headers=other).status_code == 404

        tree = client.get(f"/api/timelines/{timeline_id}", headers=HEADERS).json()
        assert len(tree["tracks"]) == 1
        assert tree["tracks"][0]["clips"] == []


class TestWebSocket:

    def test_history_replay_and_ping(self, client):
        story_id = create(client)["story"]["id"]
        with client.websocket_connect(f"/ws/{story_id}") as ws:
            first = ws.receive_json()
            assert first["type"] == "progress"
            assert first["step"] == "start"
            for _ in range(len(api_server.story_event_history[story_id]) - 1):
                ws.receive_json()
            ws.send_text("ping")
            assert ws.receive_json() == {"type": "pong"}


class TestConfirmationEmail:

    def test_missing_key_is_bad_gateway(self, client, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        response = client.post(
            "/api/auth/send-confirmation", json={"email": "a@example.com", "token": "t", "username": "a"}
        )
        assert response.status_code == 502

    def test_request_cannot_choose_link_target(self, client, monkeypatch):
        sent = []
        monkeypatch.setenv("RESEND_API_KEY", "re_test")
        monkeypatch.setenv("APP_BASE_URL", "https://studio.auracle.example")
        monkeypatch.setattr(
            requests, "post", lambda url, json, headers, timeout: sent.append(json) or FakeResponse({"id": "e1"})
        )
        response = client.post(
            "/api/auth/send-confirmation",
            json={"email": "a@example.com", "token": "t", "username": "<b>a</b>", "base_url": "https://evil.example"},
        )
        assert response.status_code == 200
        assert "evil.example" not in sent[0]["html"]
        assert "https://studio.auracle.example/auth/confirm" in sent[0]["html"]
        assert "&lt;b&gt;a&lt;/b&gt;" in sent[0]["html"]
