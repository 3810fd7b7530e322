"""
Scenarist Agent: five-phase story analysis.

Phase 1  Story DNA          (reasoning model, recalls past reasoning patterns)
Phase 2  Characters         (reasoning model, continues phase 1 reasoning)
Phase 3  Narrative chapters
Phase 4  Production plan + diagnostics
Phase 5  Cover image prompt
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from agents.llm_client import LLMClient, LLMResult, is_reasoning_model
from config import get_phase_model_config
from schemas import PhaseName
from schemas.visual_styles import DEFAULT_STYLE_NAME, resolve_style_prompt
from utils.errors import PhaseExecutionError
from utils.llm_utils import parse_llm_json, parse_llm_json_lenient
from utils.logger import get_logger

logger = get_logger("scenarist")

AGENT_VERSION = "S-1X"

JSON_ONLY = "Respond ONLY with valid JSON."

FALLBACK_CHARACTER = {
    "id": "fallback-char-1",
    "name": "Main Character",
    "role_in_story": "protagonist",
    "narrative_vitals": {
        "goals": "Story completion despite technical errors",
        "stakes": "Project continuation",
        "flaws": "Limited by API response quality",
        "wound": "Technical interruption",
    },
    "psychology": {
        "mbti": "ENFJ",
        "enneagram": "Type 3",
        "motivations": ["resilience", "adaptation"],
        "fears": ["incomplete processing"],
    },
    "arc": {
        "start": "Character introduction incomplete",
        "mid": "Development interrupted due to API response error",
        "end": "Resolution pending technical fix",
    },
    "emotional_trajectory": [{"beat": "introduction", "state": "uncertain"}],
    "performance_dna": {
        "voice_signature": {
            "lexicon": "technical",
            "syntax": "direct",
            "tone": "resilient",
            "speech_patterns": "problem-solving focused",
        }
    },
    "scene_interaction_notes": {"with_protagonist": "Self-reflective", "with_others": "Adaptive"},
}


class ScenaristAgent:
    """
    Runs the individual analysis phases. Each phase method returns the parsed
    JSON payload of that phase and raises PhaseExecutionError on failure.

    Token usage of the latest call per phase is kept in `last_usage`,
    the model that served it in `last_model`.
    """

    def __init__(
        self,
        llm_client: LLMClient = None,
        conversation_logger=None,
        reasoning_memory=None,
        model_override: str = None,
    ):
        """
        Args:
            llm_client: LLMClient (default: built from environment keys)
            conversation_logger: ConversationLogger for the AI debug trail
            reasoning_memory: ReasoningMemoryStore for phase 1 learning context
            model_override: Model id used for every phase instead of the configured ones
        """
        self.llm = llm_client or LLMClient()
        self.conversation_logger = conversation_logger
        self.reasoning_memory = reasoning_memory
        self.model_override = model_override
        self.reasoning_context: List[Dict[str, Any]] = []
        self.last_usage: Dict[str, Dict[str, int]] = {}
        self.last_model: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def story_dna(self, story_text: str, story_title: str, story_id: str = None) -> Dict[str, Any]:
        """Holistic story DNA and commercial analysis."""
        phase = PhaseName.STORY_DNA.value
        history = self.reasoning_memory.recall(phase) if self.reasoning_memory else []
        logger.info(f"[Phase 1] Story DNA extraction ({len(story_text):,} chars, {len(history)} recalled patterns)")

        learning_note = (
            "You have access to reasoning patterns from previous high-quality analyses. Build upon them."
            if history
            else "You are building new reasoning patterns that will help future analyses."
        )
        system_prompt = f"""You are The Scenarist Core Phase 1 specialist.

{learning_note}

Think step-by-step through every aspect of the narrative: narrative patterns, character
psychology, genre conventions and how the story uses them, visual storytelling
opportunities, pacing and rhythm for cinematic adaptation.
Do not ask clarifying questions; pick the most insightful interpretation.
{JSON_ONLY}"""

        prompt = f"""You are The Scenarist Core (Agent {AGENT_VERSION}) in PHASE 1: Story DNA Extraction.

Your analysis guides the scene writer that works after you. Focus on what informs scene
writing: dialogue style, visual atmosphere, pacing rhythm. Do not split the story into chapters yet.

Story Title: "{story_title}"
Story Text: "{story_text}"

Return ONLY this JSON structure:

{{
  "story_metadata": {{
    "title": "Enhanced title if needed",
    "language": "detected language code",
    "structure_detected": "narrative structure (e.g., Three-Act with Hero's Journey)",
    "genres": [{{"label": "primary genre", "confidence": 0.95}}],
    "themes": ["core theme 1", "core theme 2"],
    "motifs": ["recurring symbol/motif"],
    "pacing_curve": [{{"segment": 1, "action": 0.3, "dialogue": 0.4, "introspection": 0.3}}],
    "timeline_notes": "Temporal structure with scene transition insights",
    "overall_tone": "Dominant emotional register",
    "dialogue_style": "Dialogue characteristics and speech patterns",
    "visual_atmosphere": "Key visual elements and mood descriptors"
  }},
  "commercial_analysis": {{
    "logline": "One-sentence marketing summary",
    "comparable_films": ["Film 1 (visual similarity)", "Film 2 (narrative structure)"],
    "target_audience": "Demographic and psychographic profile",
    "marketability_score": 8.5,
    "franchise_potential": "Low/Medium/High with explanation",
    "marketing_angles": ["Unique selling point"],
    "genre_conventions": "Genre elements the scenes should honor"
  }}
}}"""

        data, result = self._run(phase, system_prompt, prompt, context=history)
        if "story_metadata" not in data:
            raise PhaseExecutionError(phase, ValueError("Response has no story_metadata"))

        self.reasoning_context = result.reasoning_items
        if self.reasoning_memory and result.reasoning_items:
            self.reasoning_memory.save(story_id, phase, result.reasoning_items, quality_score=9)

        metadata = data["story_metadata"]
        logger.info(
            f"[Phase 1] Genres: {[g.get('label') for g in metadata.get('genres', [])]} | "
            f"Themes: {metadata.get('themes', [])}"
        )
        return {
            "story_metadata": metadata,
            "commercial_analysis": data.get("commercial_analysis", {}),
        }

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def characters(
        self,
        story_text: str,
        story_metadata: Dict[str, Any],
        context: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Character dossiers.

        A response that cannot be parsed (even after repair) yields a single
        fallback character so the remaining phases can still run.
        """
        phase = PhaseName.CHARACTERS.value
        logger.info("[Phase 2] Character psychometrics & arc mapping")

        genres = ", ".join(g.get("label", "") for g in story_metadata.get("genres", []))
        prompt = f"""You are The Scenarist Core (Agent {AGENT_VERSION}) in PHASE 2: Character Psychometrics & Arc Mapping.

Your profiles will be used to write authentic dialogue and scene direction.

Story Context from Phase 1:
- Genres: {genres}
- Themes: {", ".join(story_metadata.get("themes", []))}
- Structure: {story_metadata.get("structure_detected", "")}

Story Text: "{story_text}"

Identify ALL significant characters (aim for 3-8). Return ONLY this JSON:

{{
  "characters": [
    {{
      "id": "CHR-001",
      "name": "Character name",
      "role_in_story": "Protagonist/Antagonist/Supporting/Mentor/...",
      "narrative_vitals": {{"goals": "", "stakes": "", "flaws": "", "wound": ""}},
      "psychology": {{"mbti": "", "enneagram": "", "motivations": [], "fears": []}},
      "arc": {{"start": "", "mid": "", "end": ""}},
      "emotional_trajectory": [{{"beat": "inciting_incident", "state": ""}}],
      "performance_dna": {{
        "voice_signature": {{"lexicon": "", "syntax": "", "tone": "", "speech_patterns": ""}},
        "actingNotes": "Posture, gestures, mannerisms, energy level",
        "dialogue_triggers": "Topics that change how this character speaks"
      }},
      "visual_dna": {{
        "look_and_feel": "Age, build, distinctive features",
        "costume_notes": "",
        "still_prompt_seed": "Image prompt for consistent visualization",
        "physical_mannerisms": ""
      }},
      "scene_interaction_notes": {{
        "relationship_dynamics": "",
        "conflict_generators": "",
        "scene_energy": ""
      }}
    }}
  ]
}}"""
        system_prompt = f"You are The Scenarist Core Phase 2 specialist focused on character psychology. {JSON_ONLY}"

        result = self._call(phase, system_prompt, prompt, context=context or self.reasoning_context)

        try:
            data = parse_llm_json_lenient(result.text)
        except json.JSONDecodeError as e:
            logger.warning(f"[Phase 2] JSON repair failed ({e}), using fallback character")
            self._log_error(f"Phase 2 JSON repair failed: {e}")
            return {"characters": [dict(FALLBACK_CHARACTER)]}

        characters = data.get("characters") or []
        if not characters:
            logger.warning("[Phase 2] No characters in response, using fallback character")
            return {"characters": [dict(FALLBACK_CHARACTER)]}

        logger.info(f"[Phase 2] Mapped {len(characters)} characters")
        return {"characters": characters}

    # ------------------------------------------------------------------
    # Phase 3
    # ------------------------------------------------------------------

    def narrative(
        self,
        story_text: str,
        story_metadata: Dict[str, Any],
        characters: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """4-8 chapters, each rich enough to break into about ten scenes."""
        phase = PhaseName.NARRATIVE.value
        logger.info("[Phase 3] Rhythmic deconstruction")

        cast = ", ".join(f"{c.get('name')} ({c.get('role_in_story', '')})" for c in characters)
        prompt = f"""You are The Scenarist Core (Agent {AGENT_VERSION}) in PHASE 3: Rhythmic Deconstruction.

Each chapter will later be broken into ~10 distinct scenes. Design chapters with that in mind.

Story DNA:
- Structure: {story_metadata.get("structure_detected", "")}
- Themes: {", ".join(story_metadata.get("themes", []))}
- Timeline: {story_metadata.get("timeline_notes", "")}

Available Characters: {cast}

Story Text: "{story_text}"

Create 4-8 chapters. Return ONLY this JSON:

{{
  "chapters": [
    {{
      "id": "CHP-001",
      "order": 1,
      "title": "Chapter title",
      "summary": "3-4 sentences with clear scene transitions",
      "original_text_portion": "EXACT text from the story for this chapter",
      "estimated_film_time_sec": 300,
      "narrative_purpose": "Inciting Incident/Plot Point 1/Midpoint/Climax/Resolution",
      "characters_involved": ["CHR-001"],
      "primary_locations": [{{"name": "", "type": "Interior/Exterior", "mood_context": ""}}],
      "scene_breakdown_hints": ["Natural scene break"],
      "cinematic_vitals": {{
        "mood_tone": "",
        "visual_style": "",
        "color_palette": [],
        "cinematography_hints": [],
        "artistic_focus": ""
      }},
      "dialogue_style_notes": "",
      "emotional_core": "",
      "complexity": {{
        "cast_count": 3,
        "locations": 1,
        "time_transitions": 0,
        "vfx_heavy": false,
        "stunts": "None/Simple/Complex",
        "budget_tier": "Low/Medium/High",
        "special_requirements": []
      }},
      "agent2_handoff_notes": "Guidance for the scene breakdown",
      "hooks_for_next_chapter": ""
    }}
  ]
}}"""
        system_prompt = (
            "You are The Scenarist Core Phase 3 specialist. Create rich chapters ready for scene breakdown. "
            + JSON_ONLY
        )

        data, _ = self._run(phase, system_prompt, prompt)
        chapters = data.get("chapters") or []
        if not chapters:
            raise PhaseExecutionError(phase, ValueError("Response has no chapters"))

        logger.info(f"[Phase 3] Created {len(chapters)} chapters")
        return {"chapters": chapters}

    # ------------------------------------------------------------------
    # Phase 4
    # ------------------------------------------------------------------

    def production(
        self,
        story_metadata: Dict[str, Any],
        characters: List[Dict[str, Any]],
        chapters: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        phase = PhaseName.PRODUCTION.value
        logger.info("[Phase 4] Production planning & validation")

        cast = ", ".join(f"{c.get('name')} ({c.get('role_in_story', '')})" for c in characters)
        chapter_list = ", ".join(
            f"{c.get('title')} - {(c.get('complexity') or {}).get('budget_tier', 'Low')} complexity"
            for c in chapters
        )
        prompt = f"""You are The Scenarist Core (Agent {AGENT_VERSION}) in PHASE 4: Production Planning & Validation.

Story Metadata: {json.dumps(story_metadata, ensure_ascii=False)}
Characters: {cast}
Chapters: {chapter_list}

Return ONLY this JSON:

{{
  "production_plan": {{
    "location_clusters": [
      {{"cluster_name": "LOCATION_TYPE_NAME", "chapters": ["CHP-001"], "day_night_split": {{"day": 1, "night": 1}}}}
    ],
    "suggested_shooting_order": ["Location cluster 1"]
  }},
  "agent_diagnostics": {{
    "coherence_score": 0.92,
    "timeline_warnings": [],
    "character_consistency_flags": [],
    "pacing_notes": ""
  }}
}}

Requirements:
- Cluster chapters by similar locations for efficient shooting
- Score narrative coherence (0.0-1.0)
- Flag plot holes, timeline issues and character inconsistencies"""
        system_prompt = f"You are The Scenarist Core Phase 4 specialist for production planning and validation. {JSON_ONLY}"

        data, _ = self._run(phase, system_prompt, prompt)
        return {
            "production_plan": data.get("production_plan", {}),
            "agent_diagnostics": data.get("agent_diagnostics", {}),
        }

    # ------------------------------------------------------------------
    # Phase 5
    # ------------------------------------------------------------------

    def cover_prompt(
        self,
        story_metadata: Dict[str, Any],
        characters: List[Dict[str, Any]],
        selected_style: str = DEFAULT_STYLE_NAME,
    ) -> Dict[str, Any]:
        """Cover image prompt built on the selected visual style."""
        phase = PhaseName.COVER_IMAGE.value
        style_base = resolve_style_prompt(selected_style)
        logger.info(f"[Phase 5] Cover image prompt (style: {selected_style})")

        leads = ", ".join(
            f"{c.get('name')} ({(c.get('visual_dna') or {}).get('look_and_feel') or 'Character description'})"
            for c in characters[:3]
        )
        genres = ", ".join(g.get("label", "") for g in story_metadata.get("genres", []))
        prompt = f"""You are The Scenarist Core (Agent {AGENT_VERSION}) in PHASE 5: Cover Image Generation.

Story Metadata:
- Title: {story_metadata.get("title", "")}
- Genres: {genres}
- Themes: {", ".join(story_metadata.get("themes", []))}
- Overall Tone: {story_metadata.get("overall_tone", "")}
- Visual Atmosphere: {story_metadata.get("visual_atmosphere", "")}

Main Characters: {leads}

Selected Visual Style: "{style_base}"

Write a detailed cover image prompt that starts from the selected style, features the main
character(s) in an iconic pose, reflects genre and themes, and uses cinematic composition.

Return ONLY this JSON:

{{
  "cover_image_prompt": "Complete prompt combining the style with story-specific elements",
  "style_applied": "The style used and any adaptations made"
}}"""
        system_prompt = f"You are The Scenarist Core Phase 5 specialist focused on cover image generation. {JSON_ONLY}"

        data, _ = self._run(phase, system_prompt, prompt)
        if not data.get("cover_image_prompt"):
            raise PhaseExecutionError(phase, ValueError("Response has no cover_image_prompt"))
        return {
            "cover_image_prompt": data["cover_image_prompt"],
            "style_applied": data.get("style_applied", style_base),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def model_for(self, phase: str) -> Dict[str, Any]:
        config = get_phase_model_config(phase)
        if self.model_override:
            config = {**config, "model": self.model_override}
        return config

    def _run(
        self,
        phase: str,
        system_prompt: str,
        prompt: str,
        context: Optional[List[Dict[str, Any]]] = None,
    ) -> Tuple[Dict[str, Any], LLMResult]:
        result = self._call(phase, system_prompt, prompt, context=context)
        try:
            return parse_llm_json(result.text), result
        except json.JSONDecodeError as e:
            self._log_error(f"{phase} JSON parse failed: {e}")
            raise PhaseExecutionError(phase, e) from e

    def _call(
        self,
        phase: str,
        system_prompt: str,
        prompt: str,
        context: Optional[List[Dict[str, Any]]] = None,
    ) -> LLMResult:
        config = self.model_for(phase)
        model = config["model"]
        if self.conversation_logger:
            self.conversation_logger.set_phase(phase)
            self.conversation_logger.log_query(prompt, {"model": model, "phase": phase})

        try:
            result = self.llm.complete_json(
                system_prompt,
                prompt,
                model=model,
                max_tokens=config.get("max_tokens", 4000),
                reasoning_effort=config.get("reasoning_effort"),
                context=context if is_reasoning_model(model) else None,
            )
        except Exception as e:
            self._log_error(f"{phase} failed: {e}", {"model": model})
            raise PhaseExecutionError(phase, e) from e

        self.last_usage[phase] = dict(result.usage)
        self.last_model[phase] = result.model

        if self.conversation_logger:
            if result.reasoning_summary:
                self.conversation_logger.log_thinking(
                    result.reasoning_summary,
                    {"model": model, "reasoning_tokens": result.usage.get("reasoning", 0)},
                )
            self.conversation_logger.log_response(
                result.text,
                {
                    "model": model,
                    "tokens_used": sum(result.usage.get(k, 0) for k in ("input", "output")),
                    "reasoning_items": len(result.reasoning_items),
                },
            )
        return result

    def _log_error(self, message: str, metadata: Dict[str, Any] = None):
        if self.conversation_logger:
            self.conversation_logger.log_error(message, metadata)
