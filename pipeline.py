"""
AURACLE Scenarist Pipeline

Runs the five scenarist phases for a stored story and writes the results
back to the database.

Execution flow:
1. Story DNA            -> story_metadata, commercial_analysis
2. Characters           -> characters
3. Narrative            -> chapters
4. Production           -> production_plan, agent_diagnostics
5. Cover prompt         -> cover_image_prompt
6. Cover image          -> generated, stored permanently (or temporary URL)
7. Persist              -> chapters / characters rows, analysis columns, status 'chapterized'

Every phase result is checkpointed on the story row, so a failed run
resumes from the first phase that did not complete.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

# Load .env
load_dotenv()

from sqlalchemy.exc import SQLAlchemyError

from agents import ImageAgent, ScenaristAgent
from agents.scenarist_agent import AGENT_VERSION
from db import StoryRepository
from db.models import Story
from schemas import (
    PHASE_ORDER,
    AgentDiagnostics,
    ChapterBreakdown,
    CharacterProfile,
    CommercialAnalysis,
    CoverImageData,
    PhaseName,
    PhaseStatus,
    ProcessingPhaseStatus,
    ProcessingStatus,
    ProductionPlan,
    ScenaristAnalysis,
    StoryMetadata,
    StoryStatus,
    TokenUsage,
)
from schemas.visual_styles import DEFAULT_STYLE_NAME
from utils.conversation_logger import ConversationLogger
from utils.cost import phase_cost
from utils.errors import ImageGenerationError, InvalidTransitionError, PhaseExecutionError, StorageError
from utils.logger import StoryLogAdapter, get_logger
from utils.reasoning_memory import ReasoningMemoryStore
from utils.storage import StorageManager

logger = get_logger("pipeline")

# (step, progress 0-100, message, data)
ProgressCallback = Callable[[str, int, str, Optional[Dict[str, Any]]], None]

PHASE_LABELS = {
    PhaseName.STORY_DNA.value: "Story DNA extraction",
    PhaseName.CHARACTERS.value: "Character psychometrics",
    PhaseName.NARRATIVE.value: "Rhythmic deconstruction",
    PhaseName.PRODUCTION.value: "Production planning",
    PhaseName.COVER_IMAGE.value: "Cover image prompt",
}


def _noop_progress(step: str, progress: int, message: str, data: Optional[Dict[str, Any]] = None):
    pass


class ScenaristPipeline:
    """
    AURACLE scenarist pipeline

    Coordinates the scenarist agent, the cover image agent, storage and
    the story repository.
    """

    def __init__(
        self,
        repository: StoryRepository = None,
        scenarist: ScenaristAgent = None,
        image_agent: ImageAgent = None,
        storage: StorageManager = None,
        conversation_logger: ConversationLogger = None,
    ):
        self.repository = repository or StoryRepository()
        self.conversation_logger = conversation_logger or ConversationLogger(self.repository.engine)
        self.scenarist = scenarist or ScenaristAgent(
            conversation_logger=self.conversation_logger,
            reasoning_memory=ReasoningMemoryStore(self.repository.engine),
        )
        self.image_agent = image_agent or ImageAgent()
        self.storage = storage or StorageManager()

    # ------------------------------------------------------------------
    # Full run with smart resume
    # ------------------------------------------------------------------

    def process_story(
        self,
        story_id: str,
        style: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScenaristAnalysis:
        """
        Analyze a stored story, reusing every phase already completed.

        Args:
            story_id: Story to process
            style: Visual style for the cover (default: the story's own, else Photorealistic)
            progress_callback: Receives (step, progress, message, data)

        Returns:
            ScenaristAnalysis

        Raises:
            PhaseExecutionError: a phase failed; the story is left in
                'failed_retry_needed' and can be resumed
            InvalidTransitionError: the story cannot be (re)analyzed from its status
        """
        notify = progress_callback or _noop_progress
        story = self.repository.get_story(story_id)
        style = style or story.visual_style or DEFAULT_STYLE_NAME
        if story.selected_model:
            self.scenarist.model_override = story.selected_model

        logger.info(f"{'=' * 60}")
        logger.info(f"Scenarist Pipeline - Story: {story_id} '{story.title}'")
        logger.info(f"{'=' * 60}")

        self.repository.set_status(story_id, StoryStatus.ANALYZING)
        self.conversation_logger.start_session(story_id, PhaseName.STORY_DNA.value)
        self.conversation_logger.log_system(
            f"Processing '{story.title}' ({len(story.full_story_text):,} chars, style: {style})"
        )
        job = self.repository.start_job(
            story.user_id, story_id, "scenarist", {"title": story.title, "style": style}
        )
        notify("start", 5, f"Analyzing '{story.title}'", {"story_id": story_id})

        phases, metadata = self.repository.get_phase_state(story_id)
        run = _PhaseRun(self, story_id, phases, metadata, notify)

        try:
            text, title = story.full_story_text, story.title
            phase1 = run.phase(PhaseName.STORY_DNA, lambda: self.scenarist.story_dna(text, title, story_id))
            story_metadata = phase1["story_metadata"]
            phase2 = run.phase(
                PhaseName.CHARACTERS,
                lambda: self.scenarist.characters(text, story_metadata, context=self.scenarist.reasoning_context),
            )
            characters = phase2["characters"]
            phase3 = run.phase(
                PhaseName.NARRATIVE, lambda: self.scenarist.narrative(text, story_metadata, characters)
            )
            phase4 = run.phase(
                PhaseName.PRODUCTION,
                lambda: self.scenarist.production(story_metadata, characters, phase3["chapters"]),
            )
            phase5 = run.phase(
                PhaseName.COVER_IMAGE,
                lambda: self.scenarist.cover_prompt(story_metadata, characters, style),
            )

            analysis = self._synthesize(phase1, phase2, phase3, phase4, phase5, style)
            notify("cover_image", 88, "Generating cover image...", None)
            image_info = self._generate_and_store_cover(story, analysis)

            notify("persist", 95, "Saving chapters and characters...", None)
            self._persist(story, analysis, image_info, run.total_cost)
        except Exception as e:
            self._record_failure(story_id, e)
            self.repository.finish_job(job.id, error=str(e))
            notify("error", run.last_progress, f"Processing failed: {e}", {"error": str(e)})
            if isinstance(e, PhaseExecutionError):
                raise
            raise PhaseExecutionError("persist", e) from e

        self.repository.finish_job(
            job.id,
            output_data={
                "chapters_count": len(analysis.chapters),
                "characters_count": len(analysis.characters),
                "estimated_cost_usd": round(run.total_cost, 6),
            },
        )
        self.conversation_logger.log_system(
            f"Processing complete: {len(analysis.chapters)} chapters, {len(analysis.characters)} characters"
        )
        notify("complete", 100, "Story analysis complete", {
            "story_id": story_id,
            "chapters_count": len(analysis.chapters),
            "characters_count": len(analysis.characters),
            "cover_image_url": image_info.get("image_url"),
        })
        logger.info(f"Story {story_id} chapterized ({len(analysis.chapters)} chapters)")
        return analysis

    def analyze_without_persistence(
        self,
        story_text: str,
        story_title: str,
        style: str = DEFAULT_STYLE_NAME,
    ) -> ScenaristAnalysis:
        """[Legacy] Run the five phases in one go without touching the database."""
        phase1 = self.scenarist.story_dna(story_text, story_title)
        logger.info("Phase 1 complete: story DNA extracted")
        story_metadata = phase1["story_metadata"]
        phase2 = self.scenarist.characters(story_text, story_metadata, context=self.scenarist.reasoning_context)
        logger.info("Phase 2 complete: character psychometrics mapped")
        phase3 = self.scenarist.narrative(story_text, story_metadata, phase2["characters"])
        logger.info("Phase 3 complete: rhythmic deconstruction finished")
        phase4 = self.scenarist.production(story_metadata, phase2["characters"], phase3["chapters"])
        logger.info("Phase 4 complete: production planning done")
        phase5 = self.scenarist.cover_prompt(story_metadata, phase2["characters"], style)
        logger.info("Phase 5 complete: cover image prompt generated")
        return self._synthesize(phase1, phase2, phase3, phase4, phase5, style)

    # ------------------------------------------------------------------
    # Status / resume / reset
    # ------------------------------------------------------------------

    def get_processing_status(self, story_id: str) -> ProcessingStatus:
        """
        Per-phase status: the story's phase map first, else the latest
        processing log of that phase, else pending.
        """
        story = self.repository.get_story(story_id)
        phase_map = story.processing_phases or {}
        metadata = story.processing_metadata or {}
        logs = self.repository.get_processing_logs(story_id, newest_first=True)

        phases: Dict[str, ProcessingPhaseStatus] = {}
        for phase in PHASE_ORDER:
            name = phase.value
            latest = next((log for log in logs if log.phase_name == name), None)
            raw_status = phase_map.get(name) or (latest.phase_status if latest else PhaseStatus.PENDING.value)
            try:
                status = PhaseStatus(raw_status)
            except ValueError:
                status = PhaseStatus.PENDING

            phases[name] = ProcessingPhaseStatus(
                phase=name,
                status=status,
                data=metadata.get(f"{name}_result"),
                error=latest.error_message if latest else None,
                timestamp=latest.created_at if latest else None,
                cost=latest.cost_usd if latest else None,
                tokens=TokenUsage(**latest.tokens_used) if latest and latest.tokens_used else None,
            )

        can_resume = story.status == StoryStatus.ANALYZING.value or any(
            p.status in (PhaseStatus.FAILED, PhaseStatus.PENDING) for p in phases.values()
        )
        return ProcessingStatus(
            story_id=story_id,
            story_status=story.status,
            phases=phases,
            can_resume=can_resume,
            resumed_count=story.processing_resumed_count or 0,
            last_error=story.last_processing_error,
        )

    def resume_processing(
        self,
        story_id: str,
        from_phase: Optional[str] = None,
        style: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScenaristAnalysis:
        """
        Resume a story. With from_phase, that phase and every later one
        are cleared and re-run; otherwise completed phases are reused.
        """
        self.repository.get_story(story_id)
        start = PHASE_ORDER.index(PhaseName(from_phase)) if from_phase else None

        # Checkpoints stay untouched unless the story may move to analyzing
        try:
            self.repository.set_status(story_id, StoryStatus.ANALYZING)
        except InvalidTransitionError as e:
            self.repository.add_processing_log(story_id, "resume", "failed", error_message=str(e))
            raise

        if start is not None:
            self.repository.clear_phases(story_id, [p.value for p in PHASE_ORDER[start:]])
            logger.info(f"Cleared phases from {from_phase} for story {story_id}")

        attempt = self.repository.increment_resume_count(story_id)
        self.repository.add_processing_log(
            story_id, "resume", "started", {"resumed_from": from_phase or "auto", "attempt": attempt}
        )
        logger.info(f"Resuming story {story_id} (attempt {attempt})")

        try:
            return self.process_story(story_id, style=style, progress_callback=progress_callback)
        except Exception as e:
            self.repository.add_processing_log(story_id, "resume", "failed", error_message=str(e))
            raise

    def reset_processing(self, story_id: str) -> Story:
        """Start over: forget every phase result. Logs are kept."""
        story = self.repository.reset_processing(story_id)
        logger.info(f"Processing reset for story {story_id}")
        return story

    def mark_stuck_for_retry(self) -> Optional[Story]:
        """Flag the most recent story stuck in 'analyzing' as needing a retry."""
        story = self.repository.find_latest_with_status(StoryStatus.ANALYZING)
        if story is None:
            logger.info("No stuck stories found")
            return None
        story = self.repository.set_status(
            story.id,
            StoryStatus.FAILED_RETRY_NEEDED,
            last_processing_error="Processing interrupted; marked for retry",
        )
        logger.info(f"Story {story.id} '{story.title}' marked {story.status}")
        return story

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _synthesize(
        self,
        phase1: Dict[str, Any],
        phase2: Dict[str, Any],
        phase3: Dict[str, Any],
        phase4: Dict[str, Any],
        phase5: Dict[str, Any],
        style: str,
    ) -> ScenaristAnalysis:
        chapters = [ChapterBreakdown.model_validate(c) for c in phase3.get("chapters", [])]
        chapters.sort(key=lambda c: c.order)
        return ScenaristAnalysis(
            story_metadata=StoryMetadata.model_validate(phase1.get("story_metadata", {})),
            commercial_analysis=CommercialAnalysis.model_validate(phase1.get("commercial_analysis", {})),
            characters=[CharacterProfile.model_validate(c) for c in phase2.get("characters", [])],
            chapters=chapters,
            production_plan=ProductionPlan.model_validate(phase4.get("production_plan", {})),
            agent_diagnostics=AgentDiagnostics.model_validate(phase4.get("agent_diagnostics", {})),
            cover_image_data=CoverImageData(
                prompt=phase5.get("cover_image_prompt", ""),
                style_applied=phase5.get("style_applied", ""),
                selected_style=style,
            ),
        )

    def _generate_and_store_cover(self, story: Story, analysis: ScenaristAnalysis) -> Dict[str, Any]:
        """
        Returns image bookkeeping for ai_analysis_metadata. A cover that
        cannot be generated leaves the story without one.
        """
        prompt = analysis.cover_image_data.prompt or analysis.commercial_analysis.logline or story.title
        info: Dict[str, Any] = {
            "image_url": None,
            "enhanced_prompt": None,
            "stored_permanently": False,
            "storage_error": None,
            "temporary_url": None,
            "permanent_url": None,
        }

        try:
            image = self.image_agent.generate_cover_image(prompt, story.title)
        except ImageGenerationError as e:
            logger.error(f"Cover image generation failed: {e}")
            info["storage_error"] = str(e)
            return info

        info["enhanced_prompt"] = image.prompt
        info["temporary_url"] = None if image.image_url.startswith("data:") else image.image_url

        try:
            stored = self.storage.store_cover_image(image, story.id, story.title)
        except StorageError as e:
            logger.warning(f"Permanent storage failed, using temporary URL: {e}")
            info["storage_error"] = str(e)
            info["image_url"] = image.image_url
            return info

        self.repository.add_story_image(
            story.id,
            file_path=stored["file_path"],
            image_url=stored["public_url"],
            file_size=stored["file_size"],
            original_url=stored["original_url"],
        )
        info.update(image_url=stored["public_url"], permanent_url=stored["public_url"], stored_permanently=True)
        return info

    def _persist(self, story: Story, analysis: ScenaristAnalysis, image_info: Dict[str, Any], total_cost: float):
        self.repository.replace_chapters(story.id, analysis.chapters)
        self.repository.replace_characters(story.id, analysis.characters)

        genres = analysis.story_metadata.genres
        ai_metadata = {
            "cover_image_prompt": analysis.cover_image_data.prompt,
            "cover_image_enhanced_prompt": image_info.get("enhanced_prompt"),
            "style_applied": analysis.cover_image_data.style_applied,
            "selected_style": analysis.cover_image_data.selected_style,
            "chapters_count": len(analysis.chapters),
            "characters_count": len(analysis.characters),
            "agent_version": AGENT_VERSION,
            "processed_at": datetime.now(timezone.utc).isoformat(),
            "estimated_cost_usd": round(total_cost, 6),
            "image_storage": {
                "stored_permanently": image_info["stored_permanently"],
                "storage_error": image_info["storage_error"],
                "temporary_url": image_info["temporary_url"],
                "permanent_url": image_info["permanent_url"],
            },
        }

        self.repository.set_status(
            story.id,
            StoryStatus.CHAPTERIZED,
            story_metadata=analysis.story_metadata.model_dump(),
            commercial_analysis=analysis.commercial_analysis.model_dump(),
            characters_analysis={"characters": [c.model_dump() for c in analysis.characters]},
            narrative_architecture={"chapters": [c.model_dump() for c in analysis.chapters]},
            production_blueprint=analysis.production_plan.model_dump(),
            agent_diagnostics=analysis.agent_diagnostics.model_dump(),
            cover_image_url=image_info["image_url"],
            cover_image_prompt=analysis.cover_image_data.prompt,
            logline=story.logline or analysis.commercial_analysis.logline or None,
            genre=story.genre or (genres[0].label if genres else None),
            target_audience=story.target_audience or analysis.commercial_analysis.target_audience or None,
            estimated_duration=sum(c.estimated_film_time_sec for c in analysis.chapters) or None,
            ai_analysis_metadata=ai_metadata,
            last_processing_error=None,
        )

    def _record_failure(self, story_id: str, error: Exception):
        try:
            self.repository.set_status(
                story_id, StoryStatus.FAILED_RETRY_NEEDED, last_processing_error=str(error)
            )
        except SQLAlchemyError as e:
            logger.error(f"Could not record failure for story {story_id}: {e}")
        self.conversation_logger.log_error(str(error))


class _PhaseRun:
    """Checkpointed execution of the phases of one processing run."""

    def __init__(
        self,
        pipeline: ScenaristPipeline,
        story_id: str,
        phases: Dict[str, str],
        metadata: Dict[str, Any],
        notify: ProgressCallback,
    ):
        self.pipeline = pipeline
        self.story_id = story_id
        self.phases = phases
        self.metadata = metadata
        self.notify = notify
        self.total_cost = 0.0
        self.last_progress = 5
        self.log = StoryLogAdapter(logger, {"story_id": story_id})

    def phase(self, phase: PhaseName, runner: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        name = phase.value
        index = PHASE_ORDER.index(phase)
        label = PHASE_LABELS[name]
        start_progress = 10 + index * 15
        done_progress = start_progress + 15

        cached = self.metadata.get(f"{name}_result")
        if self.phases.get(name) == PhaseStatus.COMPLETED.value and cached is not None:
            self.log.info(f"Phase {index + 1} RESUME: using existing {label} data")
            self.last_progress = done_progress
            self.notify(name, done_progress, f"{label} (resumed)", {"phase": name, "resumed": True})
            return cached

        self.log.info(f"Phase {index + 1} START: {label}...")
        self.notify(name, start_progress, f"{label}...", {"phase": name, "status": PhaseStatus.IN_PROGRESS.value})
        self.pipeline.conversation_logger.set_phase(name)
        started = time.time()

        try:
            result = runner()
        except Exception as e:
            elapsed_ms = int((time.time() - started) * 1000)
            self._save(name, PhaseStatus.FAILED, None, elapsed_ms, error=e)
            self.log.error(f"Phase {index + 1} FAILED: {e}")
            if isinstance(e, PhaseExecutionError):
                raise
            raise PhaseExecutionError(name, e) from e

        elapsed_ms = int((time.time() - started) * 1000)
        usage = self.pipeline.scenarist.last_usage.get(name) or {}
        cost = phase_cost(name, usage).total_cost if usage else None
        self.total_cost += cost or 0.0
        self._save(
            name,
            PhaseStatus.COMPLETED,
            result,
            elapsed_ms,
            model_used=self.pipeline.scenarist.last_model.get(name),
            tokens_used=usage or None,
            cost_usd=cost,
        )
        self.last_progress = done_progress
        self.log.info(f"Phase {index + 1} COMPLETE: {label} ({elapsed_ms} ms)")
        self.notify(name, done_progress, f"{label} complete", {"phase": name, "status": PhaseStatus.COMPLETED.value})
        return result

    def _save(self, name: str, status: PhaseStatus, result, elapsed_ms: int, error: Exception = None, **extra):
        # checkpoint failures are logged, not raised
        try:
            self.pipeline.repository.save_phase_progress(
                self.story_id, name, status, result, elapsed_ms, error=error, **extra
            )
        except SQLAlchemyError as e:
            self.log.error(f"Failed to save {name} progress: {e}")
