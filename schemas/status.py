"""
Story status transitions.

The story row's status column is only ever changed through transition(),
which checks the move against STATUS_TRANSITIONS.
"""

from typing import Dict, FrozenSet, Union

from .models import StoryStatus

from utils.errors import InvalidTransitionError

S = StoryStatus

_PRODUCTION_CHAIN = [
    S.CHAPTERIZED,
    S.CHARACTER_EXTRACTION,
    S.SCRIPTING_SCENES,
    S.DESIGNING_SHOTS,
    S.GENERATING_STILLS,
    S.GENERATING_VIDEO_PROMPTS,
    S.GENERATING_VIDEO,
    S.COMPLETED,
]

STATUS_TRANSITIONS: Dict[StoryStatus, FrozenSet[StoryStatus]] = {
    S.NEW: frozenset({S.ANALYZING}),
    S.ANALYZING: frozenset({S.CHAPTERIZED, S.FAILED, S.FAILED_RETRY_NEEDED}),
    S.FAILED: frozenset({S.ANALYZING}),
    S.FAILED_RETRY_NEEDED: frozenset({S.ANALYZING}),
    S.CHAPTERIZED: frozenset({S.CHARACTER_EXTRACTION, S.COMPLETED, S.ANALYZING}),
    S.COMPLETED: frozenset({S.ANALYZING}),
}

# each downstream stage advances to the next one, or fails
for _current, _next in zip(_PRODUCTION_CHAIN[1:-1], _PRODUCTION_CHAIN[2:]):
    STATUS_TRANSITIONS[_current] = frozenset({_next, S.FAILED})

RETRYABLE_STATUSES = frozenset({S.FAILED, S.FAILED_RETRY_NEEDED, S.ANALYZING})


def _coerce(status: Union[str, StoryStatus]) -> StoryStatus:
    return status if isinstance(status, StoryStatus) else StoryStatus(status)


def can_transition(current: Union[str, StoryStatus], target: Union[str, StoryStatus]) -> bool:
    """True if the story may move from current to target.

    Any status may be reset to NEW.
    """
    current, target = _coerce(current), _coerce(target)
    if target == S.NEW:
        return True
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def transition(current: Union[str, StoryStatus], target: Union[str, StoryStatus]) -> StoryStatus:
    """Validate a move and return the new status.

    Raises:
        InvalidTransitionError: the move is not in the transition table
    """
    try:
        current_s, target_s = _coerce(current), _coerce(target)
    except ValueError:
        raise InvalidTransitionError(str(current), str(target))
    if not can_transition(current_s, target_s):
        raise InvalidTransitionError(current_s.value, target_s.value)
    return target_s


def is_retryable(status: Union[str, StoryStatus]) -> bool:
    return _coerce(status) in RETRYABLE_STATUSES
