"""
AURACLE Data Models

Shared pydantic models:
- StoryStatus / PhaseName / PhaseStatus: pipeline bookkeeping enums
- Scenarist payloads: the JSON each phase writes back to the story row
- API payloads: request and response bodies of the REST server
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class StoryStatus(str, Enum):
    """Story row status"""
    NEW = "new"
    ANALYZING = "analyzing"
    CHAPTERIZED = "chapterized"
    FAILED = "failed"
    FAILED_RETRY_NEEDED = "failed_retry_needed"
    # downstream production stages
    CHARACTER_EXTRACTION = "character_extraction"
    SCRIPTING_SCENES = "scripting_scenes"
    DESIGNING_SHOTS = "designing_shots"
    GENERATING_STILLS = "generating_stills"
    GENERATING_VIDEO_PROMPTS = "generating_video_prompts"
    GENERATING_VIDEO = "generating_video"
    COMPLETED = "completed"


class PhaseName(str, Enum):
    """Scenarist pipeline phases, in execution order"""
    STORY_DNA = "phase1_storyDNA"
    CHARACTERS = "phase2_characters"
    NARRATIVE = "phase3_narrative"
    PRODUCTION = "phase4_production"
    COVER_IMAGE = "phase5_coverImage"


PHASE_ORDER: List[PhaseName] = [
    PhaseName.STORY_DNA,
    PhaseName.CHARACTERS,
    PhaseName.NARRATIVE,
    PhaseName.PRODUCTION,
    PhaseName.COVER_IMAGE,
]


class PhaseStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DashboardTier(str, Enum):
    """Subscription tier; decides which dashboard panels render"""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    ADMIN = "admin"


class MessageType(str, Enum):
    QUERY = "query"
    THINKING = "thinking"
    RESPONSE = "response"
    ERROR = "error"
    SYSTEM = "system"


# ============================================================================
# Phase 1: Story DNA
# ============================================================================

class GenreScore(BaseModel):
    label: str
    confidence: float = 0.0


class PacingSegment(BaseModel):
    segment: int
    action: float = 0.0
    dialogue: float = 0.0
    introspection: float = 0.0


class StoryMetadata(BaseModel):
    """Holistic story DNA"""
    title: str = ""
    language: str = "en"
    structure_detected: str = ""
    genres: List[GenreScore] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    motifs: List[str] = Field(default_factory=list)
    pacing_curve: List[PacingSegment] = Field(default_factory=list)
    timeline_notes: str = ""
    overall_tone: str = ""
    dialogue_style: str = ""
    visual_atmosphere: str = ""


class CommercialAnalysis(BaseModel):
    logline: str = ""
    comparable_films: List[str] = Field(default_factory=list)
    target_audience: str = ""
    marketability_score: float = 0.0
    franchise_potential: str = ""
    marketing_angles: List[str] = Field(default_factory=list)
    genre_conventions: str = ""


# ============================================================================
# Phase 2: Characters
# ============================================================================

class NarrativeVitals(BaseModel):
    goals: str = ""
    stakes: str = ""
    flaws: str = ""
    wound: str = ""


class Psychology(BaseModel):
    mbti: str = ""
    enneagram: str = ""
    motivations: List[str] = Field(default_factory=list)
    fears: List[str] = Field(default_factory=list)


class CharacterArc(BaseModel):
    start: str = ""
    mid: str = ""
    end: str = ""


class EmotionalBeat(BaseModel):
    beat: str
    state: str = ""


class VoiceSignature(BaseModel):
    lexicon: str = ""
    syntax: str = ""
    tone: str = ""
    speech_patterns: str = ""


class PerformanceDNA(BaseModel):
    voice_signature: VoiceSignature = Field(default_factory=VoiceSignature)
    actingNotes: str = ""
    dialogue_triggers: str = ""


class VisualDNA(BaseModel):
    look_and_feel: str = ""
    costume_notes: str = ""
    still_prompt_seed: str = ""
    physical_mannerisms: str = ""


class CharacterProfile(BaseModel):
    """Character dossier written by phase 2"""
    model_config = {"extra": "allow"}

    id: str
    name: str
    role_in_story: str = ""
    narrative_vitals: NarrativeVitals = Field(default_factory=NarrativeVitals)
    psychology: Psychology = Field(default_factory=Psychology)
    arc: CharacterArc = Field(default_factory=CharacterArc)
    emotional_trajectory: List[EmotionalBeat] = Field(default_factory=list)
    performance_dna: PerformanceDNA = Field(default_factory=PerformanceDNA)
    visual_dna: VisualDNA = Field(default_factory=VisualDNA)
    scene_interaction_notes: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Phase 3: Chapters
# ============================================================================

class ChapterLocation(BaseModel):
    name: str
    type: str = ""
    mood_context: str = ""


class CinematicVitals(BaseModel):
    mood_tone: str = ""
    visual_style: str = ""
    color_palette: List[str] = Field(default_factory=list)
    cinematography_hints: List[str] = Field(default_factory=list)
    artistic_focus: str = ""


class ChapterComplexity(BaseModel):
    cast_count: int = 0
    locations: int = 0
    time_transitions: int = 0
    vfx_heavy: bool = False
    stunts: str = "None"
    budget_tier: str = "Low"
    special_requirements: List[str] = Field(default_factory=list)


class ChapterBreakdown(BaseModel):
    """Chapter produced by phase 3"""
    id: str
    order: int
    title: str
    summary: str = ""
    original_text_portion: str = ""
    estimated_film_time_sec: int = 0
    narrative_purpose: str = ""
    characters_involved: List[str] = Field(default_factory=list)
    primary_locations: List[ChapterLocation] = Field(default_factory=list)
    scene_breakdown_hints: List[str] = Field(default_factory=list)
    cinematic_vitals: CinematicVitals = Field(default_factory=CinematicVitals)
    dialogue_style_notes: str = ""
    emotional_core: str = ""
    complexity: ChapterComplexity = Field(default_factory=ChapterComplexity)
    agent2_handoff_notes: str = ""
    hooks_for_next_chapter: str = ""


# ============================================================================
# Phase 4 / 5
# ============================================================================

class LocationCluster(BaseModel):
    cluster_name: str
    chapters: List[str] = Field(default_factory=list)
    day_night_split: Dict[str, int] = Field(default_factory=lambda: {"day": 0, "night": 0})


class ProductionPlan(BaseModel):
    location_clusters: List[LocationCluster] = Field(default_factory=list)
    suggested_shooting_order: List[str] = Field(default_factory=list)


class AgentDiagnostics(BaseModel):
    coherence_score: float = 0.0
    timeline_warnings: List[str] = Field(default_factory=list)
    character_consistency_flags: List[str] = Field(default_factory=list)
    pacing_notes: str = ""


class CoverImageData(BaseModel):
    prompt: str = ""
    style_applied: str = ""
    selected_style: str = "Photorealistic"


class ScenaristAnalysis(BaseModel):
    """Synthesis of all five phases"""
    story_metadata: StoryMetadata
    commercial_analysis: CommercialAnalysis
    characters: List[CharacterProfile] = Field(default_factory=list)
    chapters: List[ChapterBreakdown] = Field(default_factory=list)
    production_plan: ProductionPlan = Field(default_factory=ProductionPlan)
    agent_diagnostics: AgentDiagnostics = Field(default_factory=AgentDiagnostics)
    cover_image_data: CoverImageData = Field(default_factory=CoverImageData)


class CoverImageResult(BaseModel):
    image_url: str
    prompt: str
    base64: Optional[str] = None
    revised_prompt: Optional[str] = None
    model: Optional[str] = None


# ============================================================================
# Processing status / cost
# ============================================================================

class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    reasoning: int = 0
    cached: int = 0


class ProcessingPhaseStatus(BaseModel):
    phase: str
    status: PhaseStatus = PhaseStatus.PENDING
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: Optional[datetime] = None
    cost: Optional[float] = None
    tokens: Optional[TokenUsage] = None


class ProcessingStatus(BaseModel):
    story_id: str
    story_status: str
    phases: Dict[str, ProcessingPhaseStatus]
    can_resume: bool
    resumed_count: int = 0
    last_error: Optional[str] = None


class PhaseCost(BaseModel):
    phase: str
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


class CostEstimate(BaseModel):
    phases: List[PhaseCost] = Field(default_factory=list)
    image_cost: float = 0.0
    total_tokens: int = 0
    estimated_usd: float = 0.0


# ============================================================================
# API payloads
# ============================================================================

class CreateStoryRequest(BaseModel):
    title: str = Field(..., min_length=1, description="Story title")
    full_story_text: str = Field(..., min_length=1, description="Prose to analyze")
    logline: Optional[str] = None
    genre: Optional[str] = None
    target_audience: Optional[str] = None
    visual_style: Optional[str] = Field(default=None, description="Visual style id for the cover image")
    selected_model: Optional[str] = Field(default=None, description="Model override for text phases")
    project_id: Optional[str] = None
    auto_process: bool = Field(default=True, description="Start the pipeline immediately")


class StoryOut(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    user_id: str
    project_id: Optional[str] = None
    title: str
    logline: Optional[str] = None
    genre: Optional[str] = None
    target_audience: Optional[str] = None
    status: str
    cover_image_url: Optional[str] = None
    cover_image_prompt: Optional[str] = None
    visual_style: Optional[str] = None
    selected_model: Optional[str] = None
    story_metadata: Optional[Dict[str, Any]] = None
    commercial_analysis: Optional[Dict[str, Any]] = None
    production_blueprint: Optional[Dict[str, Any]] = None
    agent_diagnostics: Optional[Dict[str, Any]] = None
    processing_phases: Optional[Dict[str, Any]] = None
    ai_analysis_metadata: Optional[Dict[str, Any]] = None
    last_processing_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ChapterOut(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    story_id: str
    chapter_number: int
    chapter_title: str
    original_story_text_portion: Optional[str] = None
    chapter_summary: Optional[str] = None
    estimated_film_time: Optional[int] = None
    mood_tone: Optional[str] = None
    narrative_purpose: Optional[str] = None
    cinematic_vitals: Optional[Dict[str, Any]] = None
    complexity: Optional[Dict[str, Any]] = None
    hooks_for_next_chapter: Optional[str] = None
    status: str


class CharacterOut(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    story_id: str
    character_name: str
    role_in_story: Optional[str] = None
    context_backstory: Optional[str] = None
    physical_description: Optional[str] = None
    personality_traits: Optional[List[str]] = None
    psychology: Optional[Dict[str, Any]] = None
    arc: Optional[Dict[str, Any]] = None
    visual_dna: Optional[Dict[str, Any]] = None
    status: str


class PortfolioStory(BaseModel):
    """Portfolio card shown on the dashboard"""
    id: str
    story_id: str
    title: str
    image: Optional[str] = None
    project: str = "Story"
    category: str = "Drama"
    logline: Optional[str] = None
    genre: Optional[str] = None
    chapters_count: int = 0
    characters_count: int = 0
    marketability_score: Optional[float] = None
    status: str
    created_at: datetime
    visual_style: Optional[str] = None
    estimated_duration: Optional[int] = None
