"""
Story / timeline repositories.

All reads return detached ORM rows (sessions use expire_on_commit=False),
so callers only touch column attributes, never lazy relationships.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.engine import Engine

from db.models import (
    AIConversation,
    AIProcessingJob,
    Chapter,
    Character,
    Clip,
    ProcessingLog,
    Profile,
    Project,
    ReasoningMemory,
    Story,
    StoryImage,
    Timeline,
    Track,
)
from db.session import get_engine, get_session_factory, session_scope
from schemas import (
    ChapterBreakdown,
    CharacterProfile,
    CreateStoryRequest,
    DashboardTier,
    PhaseStatus,
    StoryStatus,
)
from schemas.status import transition
from utils.errors import StoryNotFoundError
from utils.logger import get_logger

logger = get_logger("repository")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StoryRepository:
    """Stories, their analysis output and processing bookkeeping."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self._factory = get_session_factory(self.engine)

    def session(self):
        return session_scope(self._factory)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_or_create_profile(
        self,
        user_id: str,
        email: str = None,
        username: str = None,
        tier: Union[str, DashboardTier] = DashboardTier.FREE,
    ) -> Profile:
        with self.session() as s:
            profile = s.get(Profile, user_id)
            if profile is None:
                profile = Profile(
                    id=user_id,
                    email=email,
                    username=username or (email.split("@")[0] if email else None),
                    subscription_tier=DashboardTier(tier).value,
                )
                s.add(profile)
                logger.info(f"Created profile {user_id} ({profile.subscription_tier})")
            return profile

    def update_profile(self, user_id: str, **fields) -> Profile:
        with self.session() as s:
            profile = s.get(Profile, user_id)
            if profile is None:
                raise KeyError(f"Profile not found: {user_id}")
            if "subscription_tier" in fields:
                fields["subscription_tier"] = DashboardTier(fields["subscription_tier"]).value
            for key, value in fields.items():
                setattr(profile, key, value)
            return profile

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def create_story(self, user_id: str, request: CreateStoryRequest) -> Story:
        with self.session() as s:
            story = Story(
                user_id=user_id,
                project_id=request.project_id,
                title=request.title,
                full_story_text=request.full_story_text,
                logline=request.logline,
                genre=request.genre,
                target_audience=request.target_audience,
                visual_style=request.visual_style,
                selected_model=request.selected_model,
                status=StoryStatus.NEW.value,
                processing_phases={},
                processing_metadata={},
            )
            s.add(story)
            s.flush()
            logger.info(f"Story created: {story.id} '{story.title}' ({len(story.full_story_text):,} chars)")
            return story

    def get_story(self, story_id: str, user_id: str = None) -> Story:
        """
        Raises:
            StoryNotFoundError: no such story, or it belongs to another user
        """
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None or (user_id is not None and story.user_id != user_id):
                raise StoryNotFoundError(story_id)
            return story

    def list_stories(self, user_id: str) -> List[Story]:
        with self.session() as s:
            return (
                s.query(Story)
                .filter(Story.user_id == user_id)
                .order_by(Story.created_at.desc())
                .all()
            )

    def delete_story(self, story_id: str, user_id: str = None):
        """Delete a story with its children, jobs and conversation trail."""
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None or (user_id is not None and story.user_id != user_id):
                raise StoryNotFoundError(story_id)
            s.query(AIConversation).filter(AIConversation.story_id == story_id).delete(synchronize_session=False)
            # Reasoning patterns outlive the story they came from
            s.query(ReasoningMemory).filter(ReasoningMemory.story_id == story_id).update(
                {ReasoningMemory.story_id: None}, synchronize_session=False
            )
            s.delete(story)

    def update_story(self, story_id: str, **fields) -> Story:
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None:
                raise StoryNotFoundError(story_id)
            for key, value in fields.items():
                setattr(story, key, value)
            return story

    def set_status(self, story_id: str, target: Union[str, StoryStatus], **fields) -> Story:
        """
        Move a story to a new status through the transition table.

        Setting the status it already has is a no-op.
        """
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None:
                raise StoryNotFoundError(story_id)
            target = StoryStatus(target)
            if story.status != target.value:
                story.status = transition(story.status, target).value
                logger.info(f"Story {story_id}: status -> {story.status}")
            for key, value in fields.items():
                setattr(story, key, value)
            return story

    def find_latest_with_status(self, status: Union[str, StoryStatus]) -> Optional[Story]:
        with self.session() as s:
            return (
                s.query(Story)
                .filter(Story.status == StoryStatus(status).value)
                .order_by(Story.created_at.desc())
                .first()
            )

    # ------------------------------------------------------------------
    # Phase state
    # ------------------------------------------------------------------

    def get_phase_state(self, story_id: str) -> Tuple[Dict[str, str], Dict[str, Any]]:
        """(phase -> status, '<phase>_result' -> data)"""
        story = self.get_story(story_id)
        return dict(story.processing_phases or {}), dict(story.processing_metadata or {})

    def save_phase_progress(
        self,
        story_id: str,
        phase: str,
        status: Union[str, PhaseStatus],
        result: Optional[Dict[str, Any]],
        processing_time_ms: int,
        error: Optional[BaseException] = None,
        model_used: str = None,
        tokens_used: Dict[str, int] = None,
        cost_usd: float = None,
    ):
        """Record a phase outcome on the story row and in processing_logs."""
        status = PhaseStatus(status)
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None:
                raise StoryNotFoundError(story_id)

            # JSON columns are replaced, not mutated, so the change is tracked
            phases = dict(story.processing_phases or {})
            metadata = dict(story.processing_metadata or {})
            phases[phase] = status.value
            if status == PhaseStatus.COMPLETED and result is not None:
                metadata[f"{phase}_result"] = result
            story.processing_phases = phases
            story.processing_metadata = metadata
            if error is not None:
                story.last_processing_error = str(error)

            s.add(ProcessingLog(
                story_id=story_id,
                phase_name=phase,
                phase_status=status.value,
                phase_data={"summary": "Data saved to processing_metadata"} if result is not None else None,
                error_message=str(error) if error is not None else None,
                processing_time_ms=processing_time_ms,
                model_used=model_used,
                tokens_used=tokens_used,
                cost_usd=cost_usd,
                completed_at=_now() if status == PhaseStatus.COMPLETED else None,
            ))
        logger.info(f"Phase {phase} {status.value} - saved ({processing_time_ms} ms)")

    def clear_phases(self, story_id: str, phases: List[str]):
        """Forget status and results of the given phases."""
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None:
                raise StoryNotFoundError(story_id)
            states = dict(story.processing_phases or {})
            metadata = dict(story.processing_metadata or {})
            for phase in phases:
                states.pop(phase, None)
                metadata.pop(f"{phase}_result", None)
            story.processing_phases = states
            story.processing_metadata = metadata

    def reset_processing(self, story_id: str) -> Story:
        """Clear all phase state and put the story back to 'new'. Logs are kept."""
        return self.set_status(
            story_id,
            StoryStatus.NEW,
            processing_phases={},
            processing_metadata={},
            processing_resumed_count=0,
            last_processing_error=None,
        )

    def increment_resume_count(self, story_id: str) -> int:
        with self.session() as s:
            story = s.get(Story, story_id)
            if story is None:
                raise StoryNotFoundError(story_id)
            story.processing_resumed_count = (story.processing_resumed_count or 0) + 1
            return story.processing_resumed_count

    # ------------------------------------------------------------------
    # Processing logs / jobs
    # ------------------------------------------------------------------

    def add_processing_log(
        self,
        story_id: str,
        phase_name: str,
        phase_status: str,
        phase_data: Dict[str, Any] = None,
        error_message: str = None,
    ) -> ProcessingLog:
        with self.session() as s:
            log = ProcessingLog(
                story_id=story_id,
                phase_name=phase_name,
                phase_status=phase_status,
                phase_data=phase_data,
                error_message=error_message,
            )
            s.add(log)
            return log

    def get_processing_logs(self, story_id: str, newest_first: bool = False) -> List[ProcessingLog]:
        with self.session() as s:
            order = ProcessingLog.created_at.desc() if newest_first else ProcessingLog.created_at.asc()
            return (
                s.query(ProcessingLog)
                .filter(ProcessingLog.story_id == story_id)
                .order_by(order)
                .all()
            )

    def start_job(self, user_id: str, story_id: str, agent_type: str, input_data: Dict[str, Any]) -> AIProcessingJob:
        with self.session() as s:
            job = AIProcessingJob(
                user_id=user_id,
                story_id=story_id,
                agent_type=agent_type,
                input_data=input_data,
                status="processing",
                started_at=_now(),
            )
            s.add(job)
            return job

    def finish_job(self, job_id: str, output_data: Dict[str, Any] = None, error: str = None) -> AIProcessingJob:
        with self.session() as s:
            job = s.get(AIProcessingJob, job_id)
            job.status = "failed" if error else "completed"
            job.output_data = output_data
            job.error_message = error
            job.completed_at = _now()
            return job

    # ------------------------------------------------------------------
    # Chapters / characters
    # ------------------------------------------------------------------

    def replace_chapters(self, story_id: str, chapters: List[ChapterBreakdown]) -> List[Chapter]:
        with self.session() as s:
            s.query(Chapter).filter(Chapter.story_id == story_id).delete()
            rows = [
                Chapter(
                    story_id=story_id,
                    chapter_number=ch.order,
                    chapter_title=ch.title,
                    original_story_text_portion=ch.original_text_portion,
                    chapter_summary=ch.summary,
                    estimated_film_time=ch.estimated_film_time_sec,
                    mood_tone=ch.cinematic_vitals.mood_tone,
                    narrative_purpose=ch.narrative_purpose,
                    cinematic_vitals=ch.cinematic_vitals.model_dump(),
                    complexity=ch.complexity.model_dump(),
                    hooks_for_next_chapter=ch.hooks_for_next_chapter,
                    status="pending",
                )
                for ch in chapters
            ]
            s.add_all(rows)
            return rows

    def replace_characters(self, story_id: str, characters: List[CharacterProfile]) -> List[Character]:
        with self.session() as s:
            s.query(Character).filter(Character.story_id == story_id).delete()
            rows = [
                Character(
                    story_id=story_id,
                    external_id=c.id,
                    character_name=c.name,
                    role_in_story=c.role_in_story,
                    context_backstory=f"{c.narrative_vitals.goals} | {c.narrative_vitals.wound}",
                    physical_description=c.visual_dna.look_and_feel,
                    personality_traits=list(c.psychology.motivations),
                    narrative_vitals=c.narrative_vitals.model_dump(),
                    psychology=c.psychology.model_dump(),
                    arc=c.arc.model_dump(),
                    emotional_trajectory=[b.model_dump() for b in c.emotional_trajectory],
                    performance_dna=c.performance_dna.model_dump(),
                    visual_dna=c.visual_dna.model_dump(),
                    status="identified",
                )
                for c in characters
            ]
            s.add_all(rows)
            return rows

    def get_chapters(self, story_id: str) -> List[Chapter]:
        with self.session() as s:
            return (
                s.query(Chapter)
                .filter(Chapter.story_id == story_id)
                .order_by(Chapter.chapter_number.asc())
                .all()
            )

    def get_characters(self, story_id: str) -> List[Character]:
        with self.session() as s:
            return (
                s.query(Character)
                .filter(Character.story_id == story_id)
                .order_by(Character.character_name.asc())
                .all()
            )

    def count_children(self, story_ids: List[str]) -> Dict[str, Tuple[int, int]]:
        """story_id -> (chapters, characters)"""
        if not story_ids:
            return {}
        with self.session() as s:
            chapter_counts = dict(
                s.query(Chapter.story_id, func.count(Chapter.id))
                .filter(Chapter.story_id.in_(story_ids))
                .group_by(Chapter.story_id)
                .all()
            )
            character_counts = dict(
                s.query(Character.story_id, func.count(Character.id))
                .filter(Character.story_id.in_(story_ids))
                .group_by(Character.story_id)
                .all()
            )
        return {
            sid: (chapter_counts.get(sid, 0), character_counts.get(sid, 0))
            for sid in story_ids
        }

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def add_story_image(
        self,
        story_id: str,
        file_path: str,
        image_url: str,
        file_size: int,
        original_url: str = None,
        mime_type: str = "image/png",
        image_type: str = "cover",
    ) -> StoryImage:
        with self.session() as s:
            image = StoryImage(
                story_id=story_id,
                file_path=file_path,
                image_url=image_url,
                file_size=file_size,
                mime_type=mime_type,
                original_url=original_url,
                image_type=image_type,
            )
            s.add(image)
            return image

    def get_latest_image(self, story_id: str, image_type: str = "cover") -> Optional[StoryImage]:
        with self.session() as s:
            return (
                s.query(StoryImage)
                .filter(StoryImage.story_id == story_id, StoryImage.image_type == image_type)
                .order_by(StoryImage.created_at.desc())
                .first()
            )


class TimelineRepository:
    """Projects and their editing timelines (tracks and clips)."""

    TRACK_TYPES = ("video", "audio", "text", "effects")

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self._factory = get_session_factory(self.engine)

    def create_project(self, user_id: str, title: str, description: str = "", project_type: str = "film") -> Project:
        with session_scope(self._factory) as s:
            project = Project(user_id=user_id, title=title, description=description, project_type=project_type)
            s.add(project)
            return project

    def list_projects(self, user_id: str) -> List[Project]:
        with session_scope(self._factory) as s:
            return s.query(Project).filter(Project.user_id == user_id).order_by(Project.created_at.desc()).all()

    @staticmethod
    def _owned_timeline(s, timeline_id: str, user_id: str = None) -> Timeline:
        """Timeline by id, hidden from anyone but the project owner."""
        query = s.query(Timeline).filter(Timeline.id == timeline_id)
        if user_id is not None:
            query = query.join(Project, Timeline.project_id == Project.id).filter(Project.user_id == user_id)
        timeline = query.one_or_none()
        if timeline is None:
            raise KeyError(f"Timeline not found: {timeline_id}")
        return timeline

    def create_timeline(self, project_id: str, title: str, user_id: str = None) -> Timeline:
        with session_scope(self._factory) as s:
            project = s.get(Project, project_id)
            if project is None or (user_id is not None and project.user_id != user_id):
                raise KeyError(f"Project not found: {project_id}")
            timeline = Timeline(project_id=project_id, title=title, duration=0.0)
            s.add(timeline)
            return timeline

    def add_track(self, timeline_id: str, name: str, track_type: str, user_id: str = None) -> Track:
        """Append a track below the existing ones."""
        if track_type not in self.TRACK_TYPES:
            raise ValueError(f"Unknown track type: {track_type}")
        with session_scope(self._factory) as s:
            self._owned_timeline(s, timeline_id, user_id)
            last = s.query(func.max(Track.position)).filter(Track.timeline_id == timeline_id).scalar()
            track = Track(
                timeline_id=timeline_id,
                name=name,
                type=track_type,
                position=0 if last is None else last + 1,
            )
            s.add(track)
            return track

    def add_clip(
        self,
        track_id: str,
        start_time: float,
        duration: float,
        media_start_time: float = 0.0,
        media_asset_id: str = None,
        properties: Dict[str, Any] = None,
        user_id: str = None,
    ) -> Clip:
        """Place a clip and grow the timeline duration to cover it."""
        if start_time < 0 or media_start_time < 0:
            raise ValueError("Clip times must be non-negative")
        if duration <= 0:
            raise ValueError("Clip duration must be positive")

        with session_scope(self._factory) as s:
            track = s.get(Track, track_id)
            if track is None:
                raise KeyError(f"Track not found: {track_id}")
            timeline = self._owned_timeline(s, track.timeline_id, user_id)
            clip = Clip(
                track_id=track_id,
                media_asset_id=media_asset_id,
                start_time=start_time,
                duration=duration,
                media_start_time=media_start_time,
                properties=properties or {},
            )
            s.add(clip)
            timeline.duration = max(timeline.duration or 0.0, start_time + duration)
            return clip

    def get_timeline_tree(self, timeline_id: str, user_id: str = None) -> Dict[str, Any]:
        with session_scope(self._factory) as s:
            timeline = self._owned_timeline(s, timeline_id, user_id)
            return {
                "id": timeline.id,
                "project_id": timeline.project_id,
                "title": timeline.title,
                "duration": timeline.duration,
                "tracks": [
                    {
                        "id": track.id,
                        "name": track.name,
                        "type": track.type,
                        "position": track.position,
                        "clips": [
                            {
                                "id": clip.id,
                                "media_asset_id": clip.media_asset_id,
                                "start_time": clip.start_time,
                                "duration": clip.duration,
                                "media_start_time": clip.media_start_time,
                                "properties": clip.properties or {},
                            }
                            for clip in track.clips
                        ],
                    }
                    for track in timeline.tracks
                ],
            }
