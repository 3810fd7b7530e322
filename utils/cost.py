"""
Token cost model for the scenarist pipeline.

Prices are USD per 1M tokens. Reasoning tokens are billed as output;
cached input tokens are billed at the cached rate.
"""
from typing import Dict, Iterable, Mapping

from config import get_pricing
from schemas import PHASE_ORDER, CostEstimate, PhaseCost

# Typical per-phase usage of one story analysis
TYPICAL_PHASE_USAGE: Dict[str, Dict[str, int]] = {
    "phase1_storyDNA": {"input": 1500, "output": 800, "reasoning": 768},
    "phase2_characters": {"input": 2000, "output": 1200, "reasoning": 640},
    "phase3_narrative": {"input": 2500, "output": 1500, "reasoning": 400},
    "phase4_production": {"input": 1800, "output": 1000, "reasoning": 200},
    "phase5_coverImage": {"input": 1200, "output": 600, "reasoning": 100},
}

PER_MILLION = 1_000_000


def phase_cost(phase: str, usage: Mapping[str, int], pricing: Mapping[str, float] = None) -> PhaseCost:
    pricing = pricing or get_pricing()
    input_tokens = usage.get("input", 0)
    cached = min(usage.get("cached", 0), input_tokens)
    output_tokens = usage.get("output", 0)
    reasoning = usage.get("reasoning", 0)

    input_cost = (input_tokens - cached) / PER_MILLION * pricing["input"] + cached / PER_MILLION * pricing["cached"]
    output_cost = (output_tokens + reasoning) / PER_MILLION * pricing["output"]
    return PhaseCost(
        phase=phase,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        reasoning_tokens=reasoning,
        input_cost=round(input_cost, 6),
        output_cost=round(output_cost, 6),
        total_cost=round(input_cost + output_cost, 6),
    )


def estimate_story_cost(
    phase_usages: Mapping[str, Mapping[str, int]] = None,
    include_image: bool = True,
    pricing: Mapping[str, float] = None,
) -> CostEstimate:
    """
    Cost of one story analysis.

    Args:
        phase_usages: phase -> token usage; defaults to TYPICAL_PHASE_USAGE
        include_image: add the cover image price
    """
    pricing = pricing or get_pricing()
    phase_usages = phase_usages if phase_usages is not None else TYPICAL_PHASE_USAGE

    ordered = [p.value for p in PHASE_ORDER if p.value in phase_usages]
    ordered += [p for p in phase_usages if p not in ordered]
    phases = [phase_cost(p, phase_usages[p], pricing) for p in ordered]

    image_cost = pricing.get("image", 0.0) if include_image else 0.0
    total_tokens = sum(c.input_tokens + c.output_tokens + c.reasoning_tokens for c in phases)
    return CostEstimate(
        phases=phases,
        image_cost=image_cost,
        total_tokens=total_tokens,
        estimated_usd=round(sum(c.total_cost for c in phases) + image_cost, 6),
    )


def volume_projection(per_story_usd: float, volumes: Iterable[int] = (1, 10, 100, 1000)) -> Dict[int, float]:
    return {v: round(per_story_usd * v, 2) for v in volumes}
