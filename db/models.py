"""
Relational schema.

Stories and their analysis live in one row with JSON columns per phase;
chapters and characters are split out once the analysis completes.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Profile(TimestampMixin, Base):
    """User profile; subscription_tier selects the dashboard tier."""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    username = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    subscription_tier = Column(String, default="free", nullable=False)
    company_name = Column(String, nullable=True)
    job_role = Column(String, nullable=True)
    onboarding_completed = Column(Boolean, default=False, nullable=False)


class Project(TimestampMixin, Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    cover_image_url = Column(String, nullable=True)
    project_type = Column(String, default="film")  # film / cartoon / faceless_youtube
    status = Column(String, default="draft")  # draft / in_progress / completed

    timelines = relationship("Timeline", back_populates="project", cascade="all, delete-orphan")


class Story(TimestampMixin, Base):
    __tablename__ = "stories"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    title = Column(String, nullable=False)
    logline = Column(Text, nullable=True)
    full_story_text = Column(Text, nullable=False)
    genre = Column(String, nullable=True)
    target_audience = Column(String, nullable=True)
    estimated_duration = Column(Integer, nullable=True)
    status = Column(String, default="new", nullable=False)
    visual_style = Column(String, nullable=True)
    selected_model = Column(String, nullable=True)

    cover_image_url = Column(Text, nullable=True)
    cover_image_prompt = Column(Text, nullable=True)

    # phase outputs
    story_metadata = Column(JSON, nullable=True)
    commercial_analysis = Column(JSON, nullable=True)
    characters_analysis = Column(JSON, nullable=True)
    narrative_architecture = Column(JSON, nullable=True)
    production_blueprint = Column(JSON, nullable=True)
    agent_diagnostics = Column(JSON, nullable=True)
    ai_analysis_metadata = Column(JSON, nullable=True)

    # resume bookkeeping
    processing_phases = Column(JSON, default=dict)
    processing_metadata = Column(JSON, default=dict)
    last_processing_error = Column(Text, nullable=True)
    processing_resumed_count = Column(Integer, default=0, nullable=False)

    chapters = relationship(
        "Chapter", back_populates="story", cascade="all, delete-orphan",
        order_by="Chapter.chapter_number",
    )
    characters = relationship(
        "Character", back_populates="story", cascade="all, delete-orphan",
        order_by="Character.character_name",
    )
    processing_logs = relationship("ProcessingLog", back_populates="story", cascade="all, delete-orphan")
    images = relationship("StoryImage", back_populates="story", cascade="all, delete-orphan")
    jobs = relationship("AIProcessingJob", back_populates="story", cascade="all, delete-orphan")


class Chapter(TimestampMixin, Base):
    __tablename__ = "chapters"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, ForeignKey("stories.id"), nullable=False)
    chapter_number = Column(Integer, nullable=False)
    chapter_title = Column(String, nullable=False)
    original_story_text_portion = Column(Text, default="")
    chapter_summary = Column(Text, nullable=True)
    estimated_film_time = Column(Integer, nullable=True)
    mood_tone = Column(String, nullable=True)
    narrative_purpose = Column(String, nullable=True)
    cinematic_vitals = Column(JSON, nullable=True)
    complexity = Column(JSON, nullable=True)
    hooks_for_next_chapter = Column(Text, nullable=True)
    status = Column(String, default="pending", nullable=False)

    story = relationship("Story", back_populates="chapters")
    scenes = relationship("Scene", back_populates="chapter", cascade="all, delete-orphan")


class Character(TimestampMixin, Base):
    __tablename__ = "characters"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, ForeignKey("stories.id"), nullable=False)
    external_id = Column(String, nullable=True)  # CHR-001 as written by the LLM
    character_name = Column(String, nullable=False)
    role_in_story = Column(String, nullable=True)
    context_backstory = Column(Text, nullable=True)
    physical_description = Column(Text, nullable=True)
    personality_traits = Column(JSON, nullable=True)
    narrative_vitals = Column(JSON, nullable=True)
    psychology = Column(JSON, nullable=True)
    arc = Column(JSON, nullable=True)
    emotional_trajectory = Column(JSON, nullable=True)
    performance_dna = Column(JSON, nullable=True)
    visual_dna = Column(JSON, nullable=True)
    generated_character_image_url = Column(Text, nullable=True)
    status = Column(String, default="identified", nullable=False)

    story = relationship("Story", back_populates="characters")


class Scene(TimestampMixin, Base):
    __tablename__ = "scenes"

    id = Column(String, primary_key=True, default=_uuid)
    chapter_id = Column(String, ForeignKey("chapters.id"), nullable=False)
    scene_number = Column(Integer, nullable=False)
    location = Column(String, nullable=True)
    time_of_day = Column(String, nullable=True)
    overall_mood_feel = Column(String, nullable=True)
    artistic_focus = Column(String, nullable=True)
    scene_description = Column(Text, default="")
    status = Column(String, default="pending_shots", nullable=False)

    chapter = relationship("Chapter", back_populates="scenes")
    shots = relationship("Shot", back_populates="scene", cascade="all, delete-orphan")


class SceneCharacter(Base):
    __tablename__ = "scene_characters"

    id = Column(String, primary_key=True, default=_uuid)
    scene_id = Column(String, ForeignKey("scenes.id"), nullable=False)
    character_id = Column(String, ForeignKey("characters.id"), nullable=False)


class Shot(TimestampMixin, Base):
    __tablename__ = "shots"

    id = Column(String, primary_key=True, default=_uuid)
    scene_id = Column(String, ForeignKey("scenes.id"), nullable=False)
    shot_number_in_scene = Column(Integer, nullable=False)
    shot_description = Column(Text, default="")
    camera_shot_type = Column(String, nullable=True)
    camera_movement = Column(String, nullable=True)
    lens_choice_suggestion = Column(String, nullable=True)
    lighting_description = Column(Text, nullable=True)
    color_palette_focus = Column(String, nullable=True)
    artistic_intent = Column(Text, nullable=True)
    still_image_prompt = Column(Text, nullable=True)
    generated_still_image_url = Column(Text, nullable=True)
    video_generation_prompt = Column(Text, nullable=True)
    estimated_duration = Column(Float, nullable=True)
    generated_video_clip_url = Column(Text, nullable=True)
    status = Column(String, default="pending_still_prompt", nullable=False)

    scene = relationship("Scene", back_populates="shots")


class MediaAsset(TimestampMixin, Base):
    __tablename__ = "media_assets"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    media_type = Column(String, nullable=False)  # image / video / audio
    file_url = Column(Text, nullable=False)
    thumbnail_url = Column(Text, nullable=True)
    duration = Column(Float, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    file_size = Column(Integer, default=0)
    asset_metadata = Column("metadata", JSON, nullable=True)


class Timeline(TimestampMixin, Base):
    __tablename__ = "timelines"

    id = Column(String, primary_key=True, default=_uuid)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False)
    title = Column(String, nullable=False)
    duration = Column(Float, default=0.0)

    project = relationship("Project", back_populates="timelines")
    tracks = relationship(
        "Track", back_populates="timeline", cascade="all, delete-orphan",
        order_by="Track.position",
    )


class Track(TimestampMixin, Base):
    __tablename__ = "tracks"

    id = Column(String, primary_key=True, default=_uuid)
    timeline_id = Column(String, ForeignKey("timelines.id"), nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # video / audio / text / effects
    position = Column(Integer, nullable=False)

    timeline = relationship("Timeline", back_populates="tracks")
    clips = relationship(
        "Clip", back_populates="track", cascade="all, delete-orphan",
        order_by="Clip.start_time",
    )


class Clip(TimestampMixin, Base):
    __tablename__ = "clips"

    id = Column(String, primary_key=True, default=_uuid)
    track_id = Column(String, ForeignKey("tracks.id"), nullable=False)
    media_asset_id = Column(String, ForeignKey("media_assets.id"), nullable=True)
    start_time = Column(Float, nullable=False)
    duration = Column(Float, nullable=False)
    media_start_time = Column(Float, default=0.0)
    properties = Column(JSON, default=dict)

    track = relationship("Track", back_populates="clips")


class AIProcessingJob(TimestampMixin, Base):
    __tablename__ = "ai_processing_jobs"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    story_id = Column(String, ForeignKey("stories.id"), nullable=True)
    agent_type = Column(String, nullable=False)
    input_data = Column(JSON, default=dict)
    output_data = Column(JSON, nullable=True)
    status = Column(String, default="pending", nullable=False)  # pending / processing / completed / failed
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    story = relationship("Story", back_populates="jobs")


class ProcessingLog(Base):
    __tablename__ = "processing_logs"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, ForeignKey("stories.id"), nullable=False)
    phase_name = Column(String, nullable=False)
    phase_status = Column(String, nullable=False)
    phase_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    model_used = Column(String, nullable=True)
    tokens_used = Column(JSON, nullable=True)
    cost_usd = Column(Float, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    story = relationship("Story", back_populates="processing_logs")


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, nullable=False, index=True)
    conversation_session = Column(String, nullable=False, index=True)
    phase_name = Column(String, nullable=True)
    message_type = Column(String, nullable=False)
    message_order = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class ReasoningMemory(Base):
    __tablename__ = "reasoning_memory"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, nullable=True)
    phase = Column(String, nullable=False, index=True)
    reasoning_context = Column(JSON, nullable=False)
    quality_score = Column(Float, nullable=False)
    genres = Column(JSON, default=list)
    themes = Column(JSON, default=list)
    created_at = Column(DateTime, default=_now, nullable=False)


class StoryImage(Base):
    __tablename__ = "story_images"

    id = Column(String, primary_key=True, default=_uuid)
    story_id = Column(String, ForeignKey("stories.id"), nullable=False)
    file_path = Column(Text, nullable=False)
    image_url = Column(Text, nullable=False)
    file_size = Column(Integer, default=0)
    mime_type = Column(String, default="image/png")
    original_url = Column(Text, nullable=True)
    image_type = Column(String, default="cover")
    created_at = Column(DateTime, default=_now, nullable=False)

    story = relationship("Story", back_populates="images")
