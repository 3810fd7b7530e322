"""
AURACLE Data Models (Pydantic Schemas)
"""

from .models import (
    StoryStatus,
    PhaseName,
    PHASE_ORDER,
    PhaseStatus,
    DashboardTier,
    MessageType,
    StoryMetadata,
    CommercialAnalysis,
    CharacterProfile,
    ChapterBreakdown,
    ProductionPlan,
    AgentDiagnostics,
    CoverImageData,
    ScenaristAnalysis,
    CoverImageResult,
    TokenUsage,
    ProcessingPhaseStatus,
    ProcessingStatus,
    PhaseCost,
    CostEstimate,
    CreateStoryRequest,
    StoryOut,
    ChapterOut,
    CharacterOut,
    PortfolioStory,
)
from .visual_styles import VisualStyle, VISUAL_STYLES, get_visual_style

__all__ = [
    "StoryStatus",
    "PhaseName",
    "PHASE_ORDER",
    "PhaseStatus",
    "DashboardTier",
    "MessageType",
    "StoryMetadata",
    "CommercialAnalysis",
    "CharacterProfile",
    "ChapterBreakdown",
    "ProductionPlan",
    "AgentDiagnostics",
    "CoverImageData",
    "ScenaristAnalysis",
    "CoverImageResult",
    "TokenUsage",
    "ProcessingPhaseStatus",
    "ProcessingStatus",
    "PhaseCost",
    "CostEstimate",
    "CreateStoryRequest",
    "StoryOut",
    "ChapterOut",
    "CharacterOut",
    "PortfolioStory",
    "VisualStyle",
    "VISUAL_STYLES",
    "get_visual_style",
]
