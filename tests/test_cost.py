"""
Unit tests for the token cost model.
"""
import sys
import os
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils.cost import TYPICAL_PHASE_USAGE, estimate_story_cost, phase_cost, volume_projection

PRICING = {"input": 2.0, "output": 8.0, "cached": 0.5, "image": 0.187}


class TestPhaseCost:

    def test_reasoning_billed_as_output(self):
        cost = phase_cost("phase1_storyDNA", {"input": 1500, "output": 800, "reasoning": 768}, PRICING)
        assert cost.input_cost == pytest.approx(0.003)
        assert cost.output_cost == pytest.approx(0.012544)
        assert cost.total_cost == pytest.approx(0.015544)
        assert cost.reasoning_tokens == 768

    def test_cached_tokens_use_cached_rate(self):
        cost = phase_cost("phase2_characters", {"input": 1000, "cached": 400, "output": 0}, PRICING)
        # 600 * 2 + 400 * 0.5 per million
        assert cost.input_cost == pytest.approx(0.0014)

    def test_cached_capped_at_input(self):
        cost = phase_cost("phase2_characters", {"input": 100, "cached": 500}, PRICING)
        assert cost.input_cost == pytest.approx(100 / 1_000_000 * 0.5)

    def test_empty_usage_is_free(self):
        assert phase_cost("phase3_narrative", {}, PRICING).total_cost == 0


class TestStoryEstimate:

    def test_typical_story(self):
        estimate = estimate_story_cost(include_image=False, pricing=PRICING)
        assert [p.phase for p in estimate.phases] == list(TYPICAL_PHASE_USAGE)
        assert estimate.total_tokens == 16208
        assert estimate.estimated_usd == pytest.approx(0.075664)
        assert estimate.image_cost == 0

    def test_typical_story_with_cover(self):
        estimate = estimate_story_cost(pricing=PRICING)
        assert estimate.image_cost == pytest.approx(0.187)
        assert estimate.estimated_usd == pytest.approx(0.262664)

    def test_phase_order_is_pipeline_order(self):
        usages = {
            "phase5_coverImage": {"input": 10},
            "phase1_storyDNA": {"input": 10},
        }
        estimate = estimate_story_cost(usages, include_image=False, pricing=PRICING)
        assert [p.phase for p in estimate.phases] == ["phase1_storyDNA", "phase5_coverImage"]


class TestVolumeProjection:

    def test_default_volumes(self):
        assert volume_projection(0.262664) == {1: 0.26, 10: 2.63, 100: 26.27, 1000: 262.66}

    def test_custom_volumes(self):
        assert volume_projection(0.5, volumes=(4,)) == {4: 2.0}
