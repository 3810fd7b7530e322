"""
Visual style catalogue for cover image generation.
"""

from typing import List, Optional
from pydantic import BaseModel


class VisualStyle(BaseModel):
    id: str
    name: str
    description: str
    category: str  # photorealistic / anime / cartoon / artistic / cinematic
    prompt_base: str


DEFAULT_STYLE_NAME = "Photorealistic"

VISUAL_STYLES: List[VisualStyle] = [
    VisualStyle(
        id="steve-mccurry",
        name="Steve McCurry Style",
        description="Iconic photojournalism with rich colors and human emotion",
        category="photorealistic",
        prompt_base="35mm, F/2.8, insanely detailed and intricate, character, elegant, ornate, "
                    "hyper-realistic, super detailed, rich saturated colors, documentary portrait",
    ),
    VisualStyle(
        id="war-photography",
        name="War Photography",
        description="Dramatic photojournalism with intense atmosphere",
        category="photorealistic",
        prompt_base="photojournalism, war photography, hyperrealism, chiaroscuro, anamorphic lens flare, "
                    "shallow depth of field, haze, volumetric lighting, 24mm, f1.8",
    ),
    VisualStyle(
        id="golden-hour",
        name="Golden Hour Cinematic",
        description="Warm, cinematic lighting with professional film quality",
        category="cinematic",
        prompt_base="warm golden hour lighting, soft natural lighting, chiaroscuro, soft bounced lighting, "
                    "cinematic composition, anamorphic lens, 35mm film, professional color grading, bokeh",
    ),
    VisualStyle(
        id="neon-noir",
        name="Neon Noir",
        description="Dark atmospheric with bright neon accents",
        category="cinematic",
        prompt_base="bright neon lighting, hard shadows, chiaroscuro, cyberpunk aesthetic, moody atmosphere, "
                    "volumetric lighting, cinematic noir, urban nightscape, neon reflections",
    ),
    VisualStyle(
        id="studio-ghibli",
        name="Hand-drawn Fantasy Anime",
        description="Whimsical anime with nature and fantasy elements",
        category="anime",
        prompt_base="hand-drawn anime, watercolor background, soft pastels, whimsical, nature elements, "
                    "magical atmosphere, detailed scenery, warm lighting",
    ),
    VisualStyle(
        id="pixar-3d",
        name="3D Animation",
        description="Modern 3D animation with vibrant colors and character focus",
        category="cartoon",
        prompt_base="3d animation, vibrant colors, character-focused, clean lighting, smooth surfaces, "
                    "expressive features, family-friendly, high quality 3d render, subsurface scattering",
    ),
    VisualStyle(
        id="disney-2d",
        name="Classic 2D Animation",
        description="Traditional hand-drawn animation style",
        category="cartoon",
        prompt_base="hand-drawn, traditional animation, cel shading, vibrant colors, expressive characters, "
                    "clean line art",
    ),
    VisualStyle(
        id="oil-painting",
        name="Renaissance Oil Painting",
        description="Classical oil painting with rich textures and dramatic lighting",
        category="artistic",
        prompt_base="oil painting, renaissance style, chiaroscuro lighting, rich textures, classical composition, "
                    "dramatic shadows, warm color palette, baroque influence",
    ),
    VisualStyle(
        id="concept-art",
        name="Game Concept Art",
        description="Digital concept art style for games and films",
        category="artistic",
        prompt_base="concept art, digital painting, matte painting, cinematic lighting, detailed environment, "
                    "atmospheric perspective, film concept",
    ),
]


def get_visual_style(style_id: Optional[str]) -> Optional[VisualStyle]:
    if not style_id:
        return None
    return next((s for s in VISUAL_STYLES if s.id == style_id), None)


def get_styles_by_category(category: str) -> List[VisualStyle]:
    return [s for s in VISUAL_STYLES if s.category == category]


def resolve_style_prompt(style_id: Optional[str]) -> str:
    """Prompt base for a style id; unknown ids are passed through as free text."""
    style = get_visual_style(style_id)
    if style:
        return style.prompt_base
    return style_id or DEFAULT_STYLE_NAME
