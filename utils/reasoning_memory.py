"""
Reasoning memory: reuse reasoning items of well-scored analyses as extra
context for later runs of the same phase.
"""
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from config import get_reasoning_memory_config
from db.models import ReasoningMemory
from db.session import get_engine, get_session_factory, session_scope
from utils.logger import get_logger

logger = get_logger("reasoning_memory")


class ReasoningMemoryStore:
    def __init__(self, engine=None, min_quality: float = None):
        self._factory = get_session_factory(engine or get_engine())
        config = get_reasoning_memory_config()
        self.min_quality = min_quality if min_quality is not None else config.get("min_quality", 8)
        self.recall_limit = config.get("recall_limit", 2)

    def save(self, story_id: str, phase: str, reasoning_items: List[Dict[str, Any]], quality_score: float) -> bool:
        """Store a pattern if it scores high enough. Returns True when saved."""
        if quality_score < self.min_quality or not reasoning_items:
            logger.debug(f"Skipping save for {phase}: score {quality_score} or empty items")
            return False
        try:
            with session_scope(self._factory) as s:
                s.add(ReasoningMemory(
                    story_id=story_id,
                    phase=phase,
                    reasoning_context=reasoning_items,
                    quality_score=quality_score,
                    genres=[],
                    themes=[],
                ))
        except SQLAlchemyError as e:
            logger.error(f"Failed to save reasoning pattern for {phase}: {e}")
            return False
        logger.info(f"Saved reasoning pattern for {phase} ({len(reasoning_items)} items, score {quality_score})")
        return True

    def recall(self, phase: str, limit: int = None) -> List[Dict[str, Any]]:
        """Flattened reasoning items of the best patterns for a phase."""
        limit = limit or self.recall_limit
        try:
            with session_scope(self._factory) as s:
                rows = (
                    s.query(ReasoningMemory)
                    .filter(ReasoningMemory.phase == phase, ReasoningMemory.quality_score >= self.min_quality)
                    .order_by(ReasoningMemory.quality_score.desc(), ReasoningMemory.created_at.desc())
                    .limit(limit)
                    .all()
                )
                items = [item for row in rows for item in (row.reasoning_context or [])]
        except SQLAlchemyError as e:
            logger.error(f"Failed to retrieve reasoning memory: {e}")
            return []
        logger.info(f"Recalled {len(items)} reasoning items for {phase}")
        return items
