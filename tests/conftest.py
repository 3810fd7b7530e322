"""
Shared fixtures: in-memory database, fake scenarist / image agents and a
local-only storage manager. No test touches the network.
"""
import base64
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from db.models import Base
from db.repository import StoryRepository, TimelineRepository
from schemas import CoverImageResult, CreateStoryRequest
from utils.conversation_logger import ConversationLogger
from utils.error_manager import ErrorManager
from utils.errors import ImageGenerationError, PhaseExecutionError
from utils.storage import StorageManager

STORY_TEXT = (
    "Mara runs the last lighthouse on the coast. When a stranger washes ashore "
    "with her brother's compass, she has to decide whether to trust him."
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-cover"


class FakeScenarist:
    """Stands in for ScenaristAgent with canned phase payloads."""

    def __init__(self):
        self.model_override = None
        self.reasoning_context = []
        self.last_usage = {}
        self.last_model = {}
        self.calls = []
        self.fail_on = set()

    def _record(self, phase):
        self.calls.append(phase)
        if phase in self.fail_on:
            raise PhaseExecutionError(phase, RuntimeError("model unavailable"))
        self.last_usage[phase] = {"input": 1000, "output": 500, "reasoning": 100, "cached": 0}
        self.last_model[phase] = self.model_override or "fake-model"

    def story_dna(self, story_text, story_title, story_id=None):
        self._record("phase1_storyDNA")
        self.reasoning_context = [{"type": "reasoning", "id": "rs_1", "summary": []}]
        return {
            "story_metadata": {
                "title": story_title,
                "language": "en",
                "structure_detected": "Three-Act",
                "genres": [{"label": "Drama", "confidence": 0.9}, {"label": "Mystery", "confidence": 0.6}],
                "themes": ["trust", "grief"],
                "overall_tone": "melancholic",
            },
            "commercial_analysis": {
                "logline": "A lighthouse keeper must trust the stranger who carries her lost brother's compass.",
                "target_audience": "Adults 25-45",
                "marketability_score": 7.5,
            },
        }

    def characters(self, story_text, story_metadata, context=None):
        self._record("phase2_characters")
        return {
            "characters": [
                {
                    "id": "CHR-001",
                    "name": "Mara",
                    "role_in_story": "Protagonist",
                    "narrative_vitals": {"goals": "Keep the light burning", "wound": "Lost her brother at sea"},
                    "psychology": {"motivations": ["duty", "closure"]},
                    "visual_dna": {"look_and_feel": "Weathered, late 30s, salt-stiff coat"},
                },
                {
                    "id": "CHR-002",
                    "name": "The Stranger",
                    "role_in_story": "Catalyst",
                },
            ]
        }

    def narrative(self, story_text, story_metadata, characters):
        self._record("phase3_narrative")
        return {
            "chapters": [
                {
                    "id": f"CHP-00{n}",
                    "order": n,
                    "title": f"Chapter {n}",
                    "summary": f"Summary {n}",
                    "estimated_film_time_sec": 300,
                    "cinematic_vitals": {"mood_tone": "brooding" if n == 1 else "tense"},
                    "complexity": {"budget_tier": "Low"},
                }
                for n in (2, 1, 4, 3)
            ]
        }

    def production(self, story_metadata, characters, chapters):
        self._record("phase4_production")
        return {
            "production_plan": {
                "location_clusters": [{"cluster_name": "LIGHTHOUSE", "chapters": ["CHP-001", "CHP-003"]}],
                "suggested_shooting_order": ["LIGHTHOUSE"],
            },
            "agent_diagnostics": {"coherence_score": 0.9},
        }

    def cover_prompt(self, story_metadata, characters, selected_style="Photorealistic"):
        self._record("phase5_coverImage")
        return {
            "cover_image_prompt": f"{selected_style}: a lighthouse in a storm",
            "style_applied": selected_style,
        }


class FakeImageAgent:
    def __init__(self):
        self.fail = False
        self.prompts = []

    def generate_cover_image(self, prompt, story_title):
        self.prompts.append(prompt)
        if self.fail:
            raise ImageGenerationError("All image generation methods failed: quota")
        encoded = base64.b64encode(PNG_BYTES).decode("ascii")
        return CoverImageResult(
            image_url=f"data:image/png;base64,{encoded}",
            prompt=f"Poster: {prompt}",
            base64=encoded,
            model="fake-image",
        )


@pytest.fixture(autouse=True)
def isolated_error_log(tmp_path, monkeypatch):
    monkeypatch.setattr(ErrorManager, "LOG_FILE", str(tmp_path / "api_errors.log"))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine):
    return StoryRepository(engine)


@pytest.fixture
def timelines(engine):
    return TimelineRepository(engine)


@pytest.fixture
def storage(tmp_path, monkeypatch):
    for var in ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME", "R2_PUBLIC_BASE_URL"):
        monkeypatch.delenv(var, raising=False)
    return StorageManager(local_root=str(tmp_path / "media"))


@pytest.fixture
def fake_scenarist():
    return FakeScenarist()


@pytest.fixture
def fake_image_agent():
    return FakeImageAgent()


@pytest.fixture
def pipeline(repository, fake_scenarist, fake_image_agent, storage, engine):
    from pipeline import ScenaristPipeline

    return ScenaristPipeline(
        repository=repository,
        scenarist=fake_scenarist,
        image_agent=fake_image_agent,
        storage=storage,
        conversation_logger=ConversationLogger(engine),
    )


@pytest.fixture
def make_story(repository):
    def _make(user_id="user-1", title="The Last Light", **fields):
        repository.get_or_create_profile(user_id, email=f"{user_id}@example.com")
        request = CreateStoryRequest(title=title, full_story_text=STORY_TEXT, **fields)
        return repository.create_story(user_id, request)

    return _make
