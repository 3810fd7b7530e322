"""
Unit tests for the story status transition table.
"""
import sys
import os
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from schemas import StoryStatus
from schemas.status import can_transition, is_retryable, transition
from utils.errors import InvalidTransitionError


class TestAnalysisTransitions:

    @pytest.mark.parametrize("current,target", [
        ("new", "analyzing"),
        ("analyzing", "chapterized"),
        ("analyzing", "failed"),
        ("analyzing", "failed_retry_needed"),
        ("failed", "analyzing"),
        ("failed_retry_needed", "analyzing"),
        ("chapterized", "analyzing"),
        ("chapterized", "completed"),
        ("chapterized", "character_extraction"),
        ("completed", "analyzing"),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert transition(current, target) == StoryStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("new", "chapterized"),
        ("new", "completed"),
        ("failed", "chapterized"),
        ("failed_retry_needed", "completed"),
        ("analyzing", "completed"),
        ("chapterized", "failed_retry_needed"),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc:
            transition(current, target)
        assert exc.value.current == current
        assert exc.value.target == target

    def test_any_status_can_reset_to_new(self):
        for status in StoryStatus:
            assert can_transition(status, StoryStatus.NEW)

    def test_unknown_status_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            transition("draft", "analyzing")
        with pytest.raises(InvalidTransitionError):
            transition("new", "processing")


class TestProductionChain:

    def test_stages_advance_linearly(self):
        chain = [
            StoryStatus.CHARACTER_EXTRACTION,
            StoryStatus.SCRIPTING_SCENES,
            StoryStatus.DESIGNING_SHOTS,
            StoryStatus.GENERATING_STILLS,
            StoryStatus.GENERATING_VIDEO_PROMPTS,
            StoryStatus.GENERATING_VIDEO,
            StoryStatus.COMPLETED,
        ]
        for current, nxt in zip(chain, chain[1:]):
            assert can_transition(current, nxt)

    def test_stages_cannot_skip(self):
        assert not can_transition(StoryStatus.CHARACTER_EXTRACTION, StoryStatus.GENERATING_VIDEO)
        assert not can_transition(StoryStatus.SCRIPTING_SCENES, StoryStatus.ANALYZING)

    def test_stage_can_fail(self):
        assert can_transition(StoryStatus.GENERATING_STILLS, StoryStatus.FAILED)


class TestRetryable:

    @pytest.mark.parametrize("status", ["failed", "failed_retry_needed", "analyzing"])
    def test_retryable(self, status):
        assert is_retryable(status)

    @pytest.mark.parametrize("status", ["new", "chapterized", "completed", "scripting_scenes"])
    def test_not_retryable(self, status):
        assert not is_retryable(status)
