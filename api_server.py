"""
AURACLE FastAPI Server

REST API for the dashboard client. Story processing runs as a background
task; progress is pushed over WebSocket.
"""

import os
import asyncio
from dotenv import load_dotenv

# Load .env
load_dotenv()

from typing import Optional, Dict, Any, List
from datetime import datetime

from fastapi import Depends, FastAPI, Header, WebSocket, WebSocketDisconnect, HTTPException, BackgroundTasks, Request
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from agents.llm_client import OPENROUTER_MODELS
from config import get_dashboard_panels, get_phase_model_config
from db import StoryRepository, TimelineRepository, get_engine
from db.models import Profile
from pipeline import ScenaristPipeline
from schemas import (
    PHASE_ORDER,
    ChapterOut,
    CharacterOut,
    CreateStoryRequest,
    DashboardTier,
    PhaseName,
    PortfolioStory,
    ProcessingStatus,
    StoryOut,
    StoryStatus,
    VISUAL_STYLES,
)
from schemas.status import can_transition, is_retryable
from utils.conversation_logger import ConversationLogger
from utils.cost import estimate_story_cost, volume_projection
from utils.email_service import EmailService
from utils.errors import ConfigurationError, InvalidTransitionError, StoryNotFoundError
from utils.logger import get_logger

logger = get_logger("api")

app = FastAPI(title="AURACLE API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# locally stored covers
os.makedirs("outputs", exist_ok=True)
app.mount("/media", StaticFiles(directory="outputs"), name="media")

# active WebSocket connections
active_connections: Dict[str, WebSocket] = {}
# per-story event history, replayed on (re)connect
story_event_history: Dict[str, List[Dict[str, Any]]] = {}


# ============================================================================
# Error mapping
# ============================================================================

@app.exception_handler(StoryNotFoundError)
async def story_not_found_handler(request: Request, exc: StoryNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ============================================================================
# Dependencies
# ============================================================================

def get_repository() -> StoryRepository:
    return StoryRepository(get_engine())


def get_timeline_repository() -> TimelineRepository:
    return TimelineRepository(get_engine())


def get_pipeline(repository: StoryRepository = Depends(get_repository)) -> ScenaristPipeline:
    return ScenaristPipeline(repository=repository)


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    repository: StoryRepository = Depends(get_repository),
) -> Profile:
    """Caller identity from the X-User-Id header; the profile is created on first sight."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return repository.get_or_create_profile(x_user_id, email=x_user_email)


# ============================================================================
# Request models
# ============================================================================

class ResumeRequest(BaseModel):
    from_phase: Optional[PhaseName] = Field(default=None, description="Re-run this phase and every later one")
    style: Optional[str] = None


class ProjectCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    project_type: str = "film"


class TimelineCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)


class TrackCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = "video"


class ClipCreateRequest(BaseModel):
    start_time: float
    duration: float
    media_start_time: float = 0.0
    media_asset_id: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


class ConfirmationEmailRequest(BaseModel):
    email: str
    token: str
    username: str


class OnboardingRequest(BaseModel):
    company_name: Optional[str] = None
    job_role: Optional[str] = None
    username: Optional[str] = None


# ============================================================================
# WebSocket progress
# ============================================================================

async def send_progress(story_id: str, payload: Dict[str, Any]):
    if story_id in active_connections:
        ws = active_connections[story_id]
        try:
            await ws.send_json(payload)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"WebSocket send error: {e}")
            active_connections.pop(story_id, None)


class ProgressTracker:
    """
    Progress callback handed to the pipeline.

    The pipeline runs on a worker thread, so sends are scheduled onto the
    server event loop.
    """

    def __init__(self, story_id: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.story_id = story_id
        self.loop = loop
        self.current_step = ""
        self.current_progress = 0

    def __call__(self, step: str, progress: int, message: str, data: Optional[Dict[str, Any]] = None):
        self.current_step = step
        self.current_progress = progress
        payload = {
            "type": "progress",
            "step": step,
            "progress": progress,
            "message": message,
            "data": data or {},
            "timestamp": datetime.now().isoformat(),
        }
        story_event_history.setdefault(self.story_id, []).append(payload)

        if self.story_id in active_connections and self.loop is not None and self.loop.is_running():
            asyncio.run_coroutine_threadsafe(send_progress(self.story_id, payload), self.loop)


def run_processing(
    pipeline: ScenaristPipeline,
    story_id: str,
    tracker: ProgressTracker,
    style: Optional[str] = None,
    resume: bool = False,
    from_phase: Optional[str] = None,
):
    """BackgroundTasks entry point. Failures are already recorded on the story row."""
    try:
        if resume:
            pipeline.resume_processing(story_id, from_phase=from_phase, style=style, progress_callback=tracker)
        else:
            pipeline.process_story(story_id, style=style, progress_callback=tracker)
    except Exception as e:
        logger.error(f"Processing of story {story_id} failed: {e}")


# ============================================================================
# Stories
# ============================================================================

@app.post("/api/stories", status_code=201)
async def create_story(
    req: CreateStoryRequest,
    background_tasks: BackgroundTasks,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    """Store a story and (by default) start the scenarist pipeline."""
    story = repository.create_story(user.id, req)

    if req.auto_process:
        tracker = ProgressTracker(story.id, asyncio.get_running_loop())
        background_tasks.add_task(run_processing, pipeline, story.id, tracker, req.visual_style)

    return {
        "story": StoryOut.model_validate(story),
        "status": "processing" if req.auto_process else "created",
        "ws_url": f"/ws/{story.id}",
    }


@app.get("/api/stories", response_model=List[StoryOut])
async def list_stories(
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    return repository.list_stories(user.id)


@app.get("/api/stories/{story_id}", response_model=StoryOut)
async def get_story(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    return repository.get_story(story_id, user.id)


@app.get("/api/stories/{story_id}/chapters", response_model=List[ChapterOut])
async def get_chapters(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    repository.get_story(story_id, user.id)
    return repository.get_chapters(story_id)


@app.get("/api/stories/{story_id}/characters", response_model=List[CharacterOut])
async def get_characters(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    repository.get_story(story_id, user.id)
    return repository.get_characters(story_id)


@app.get("/api/stories/{story_id}/status", response_model=ProcessingStatus)
async def get_processing_status(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    repository.get_story(story_id, user.id)
    return pipeline.get_processing_status(story_id)


@app.get("/api/stories/{story_id}/logs")
async def get_processing_logs(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    repository.get_story(story_id, user.id)
    return [
        {
            "id": log.id,
            "phase_name": log.phase_name,
            "phase_status": log.phase_status,
            "phase_data": log.phase_data,
            "error_message": log.error_message,
            "processing_time_ms": log.processing_time_ms,
            "model_used": log.model_used,
            "tokens_used": log.tokens_used,
            "cost_usd": log.cost_usd,
            "created_at": log.created_at.isoformat(),
        }
        for log in repository.get_processing_logs(story_id)
    ]


@app.get("/api/stories/{story_id}/conversations")
async def get_conversations(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    """AI conversation trail (queries, reasoning summaries, responses)."""
    repository.get_story(story_id, user.id)
    return ConversationLogger(repository.engine).get_story_conversations(story_id)


@app.post("/api/stories/{story_id}/resume", status_code=202)
async def resume_story(
    story_id: str,
    background_tasks: BackgroundTasks,
    req: Optional[ResumeRequest] = None,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    req = req or ResumeRequest()
    story = repository.get_story(story_id, user.id)
    if story.status != StoryStatus.ANALYZING.value and not can_transition(story.status, StoryStatus.ANALYZING):
        raise InvalidTransitionError(story.status, StoryStatus.ANALYZING.value)

    from_phase = req.from_phase.value if req.from_phase else None
    tracker = ProgressTracker(story_id, asyncio.get_running_loop())
    background_tasks.add_task(run_processing, pipeline, story_id, tracker, req.style, True, from_phase)
    return {"story_id": story_id, "status": "resuming", "from_phase": from_phase or "auto", "ws_url": f"/ws/{story_id}"}


@app.post("/api/stories/{story_id}/retry", status_code=202)
async def retry_story(
    story_id: str,
    background_tasks: BackgroundTasks,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    """Resume a failed story from its first incomplete phase."""
    story = repository.get_story(story_id, user.id)
    if not is_retryable(story.status):
        raise InvalidTransitionError(story.status, StoryStatus.ANALYZING.value)

    tracker = ProgressTracker(story_id, asyncio.get_running_loop())
    background_tasks.add_task(run_processing, pipeline, story_id, tracker, None, True)
    return {"story_id": story_id, "status": "retrying", "ws_url": f"/ws/{story_id}"}


@app.post("/api/stories/{story_id}/reset", response_model=StoryOut)
async def reset_story(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    repository.get_story(story_id, user.id)
    story_event_history.pop(story_id, None)
    return pipeline.reset_processing(story_id)


@app.delete("/api/stories/{story_id}")
async def delete_story(
    story_id: str,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
    pipeline: ScenaristPipeline = Depends(get_pipeline),
):
    repository.get_story(story_id, user.id)
    removed = pipeline.storage.delete_prefix(f"story-covers/{story_id}")
    repository.delete_story(story_id, user.id)
    story_event_history.pop(story_id, None)
    return {"deleted": story_id, "files_removed": removed}


# ============================================================================
# Dashboard
# ============================================================================

@app.get("/api/portfolio", response_model=List[PortfolioStory])
async def get_portfolio(
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    """Portfolio cards for every story of the caller."""
    stories = repository.list_stories(user.id)
    counts = repository.count_children([s.id for s in stories])

    cards = []
    for story in stories:
        chapters_count, characters_count = counts.get(story.id, (0, 0))
        commercial = story.commercial_analysis or {}
        ai_metadata = story.ai_analysis_metadata or {}
        cards.append(PortfolioStory(
            id=story.id,
            story_id=story.id,
            title=story.title,
            image=story.cover_image_url,
            category=story.genre or "Drama",
            logline=story.logline,
            genre=story.genre,
            chapters_count=chapters_count,
            characters_count=characters_count,
            marketability_score=commercial.get("marketability_score"),
            status=story.status,
            created_at=story.created_at,
            visual_style=story.visual_style or ai_metadata.get("selected_style"),
            estimated_duration=story.estimated_duration,
        ))
    return cards


@app.get("/api/dashboard")
async def get_dashboard(
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    """Panels visible to the caller's subscription tier, plus story stats."""
    tier = DashboardTier(user.subscription_tier or DashboardTier.FREE.value)
    panels = get_dashboard_panels().get(tier.value, [])
    stories = repository.list_stories(user.id)
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "username": user.username,
            "onboarding_completed": user.onboarding_completed,
        },
        "tier": tier.value,
        "panels": panels,
        "stats": {
            "stories": len(stories),
            "chapterized": sum(1 for s in stories if s.status == StoryStatus.CHAPTERIZED.value),
            "processing": sum(1 for s in stories if s.status == StoryStatus.ANALYZING.value),
            "needs_retry": sum(1 for s in stories if is_retryable(s.status) and s.status != StoryStatus.ANALYZING.value),
        },
    }


@app.get("/api/styles")
async def list_styles(category: Optional[str] = None):
    return [s.model_dump() for s in VISUAL_STYLES if category is None or s.category == category]


@app.get("/api/models")
async def list_models():
    """Configured model per phase, and the selectable OpenRouter models."""
    return {
        "phases": {p.value: get_phase_model_config(p.value) for p in PHASE_ORDER},
        "openrouter": OPENROUTER_MODELS,
    }


@app.get("/api/cost-estimate")
async def cost_estimate(include_image: bool = True):
    estimate = estimate_story_cost(include_image=include_image)
    return {
        "per_story": estimate.model_dump(),
        "volume": volume_projection(estimate.estimated_usd),
    }


# ============================================================================
# Projects / timelines
# ============================================================================

@app.post("/api/projects", status_code=201)
async def create_project(
    req: ProjectCreateRequest,
    user: Profile = Depends(get_current_user),
    timelines: TimelineRepository = Depends(get_timeline_repository),
):
    project = timelines.create_project(user.id, req.title, req.description, req.project_type)
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "project_type": project.project_type,
        "status": project.status,
    }


@app.post("/api/projects/{project_id}/timelines", status_code=201)
async def create_timeline(
    project_id: str,
    req: TimelineCreateRequest,
    user: Profile = Depends(get_current_user),
    timelines: TimelineRepository = Depends(get_timeline_repository),
):
    try:
        timeline = timelines.create_timeline(project_id, req.title, user_id=user.id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))
    return {"id": timeline.id, "project_id": project_id, "title": timeline.title, "duration": timeline.duration}


@app.post("/api/timelines/{timeline_id}/tracks", status_code=201)
async def add_track(
    timeline_id: str,
    req: TrackCreateRequest,
    user: Profile = Depends(get_current_user),
    timelines: TimelineRepository = Depends(get_timeline_repository),
):
    try:
        track = timelines.add_track(timeline_id, req.name, req.type, user_id=user.id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": track.id, "timeline_id": timeline_id, "name": track.name, "type": track.type, "position": track.position}


@app.post("/api/tracks/{track_id}/clips", status_code=201)
async def add_clip(
    track_id: str,
    req: ClipCreateRequest,
    user: Profile = Depends(get_current_user),
    timelines: TimelineRepository = Depends(get_timeline_repository),
):
    try:
        clip = timelines.add_clip(
            track_id,
            req.start_time,
            req.duration,
            media_start_time=req.media_start_time,
            media_asset_id=req.media_asset_id,
            properties=req.properties,
            user_id=user.id,
        )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "id": clip.id,
        "track_id": track_id,
        "start_time": clip.start_time,
        "duration": clip.duration,
        "media_start_time": clip.media_start_time,
    }


@app.get("/api/timelines/{timeline_id}")
async def get_timeline(
    timeline_id: str,
    user: Profile = Depends(get_current_user),
    timelines: TimelineRepository = Depends(get_timeline_repository),
):
    try:
        return timelines.get_timeline_tree(timeline_id, user_id=user.id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))


# ============================================================================
# Auth helpers
# ============================================================================

@app.post("/api/auth/send-confirmation")
async def send_confirmation(req: ConfirmationEmailRequest):
    result = EmailService().send_confirmation_email(req.email, req.token, req.username)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["error"])
    return result


@app.post("/api/profile/onboarding-complete")
async def complete_onboarding(
    req: OnboardingRequest,
    user: Profile = Depends(get_current_user),
    repository: StoryRepository = Depends(get_repository),
):
    fields = {k: v for k, v in req.model_dump().items() if v is not None}
    profile = repository.update_profile(user.id, onboarding_completed=True, **fields)
    return {
        "id": profile.id,
        "username": profile.username,
        "company_name": profile.company_name,
        "job_role": profile.job_role,
        "onboarding_completed": profile.onboarding_completed,
    }


# ============================================================================
# WebSocket / health
# ============================================================================

@app.websocket("/ws/{story_id}")
async def websocket_endpoint(websocket: WebSocket, story_id: str):
    """Live processing progress for one story."""
    await websocket.accept()
    active_connections[story_id] = websocket

    # replay history so a reconnecting client catches up
    for event in list(story_event_history.get(story_id, [])):
        await websocket.send_json(event)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        # history is kept for reconnects
        active_connections.pop(story_id, None)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "version": "1.0",
        "active_connections": len(active_connections),
    }


if __name__ == "__main__":
    import uvicorn

    logger.info("AURACLE API Server v1.0 - http://localhost:8000 (docs: /docs)")

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info",
    )
