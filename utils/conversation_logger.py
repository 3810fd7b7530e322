"""
AI conversation log.

Every prompt, reasoning summary and response of a processing session is
kept in memory first and then written to ai_conversations. A database
failure never loses the message or interrupts processing.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from db.models import AIConversation
from db.session import get_engine, get_session_factory, session_scope
from schemas import MessageType
from utils.logger import get_logger

logger = get_logger("conversation")


class ConversationLogger:
    def __init__(self, engine=None):
        self._factory = get_session_factory(engine or get_engine())
        self.current_session: Optional[str] = None
        self.current_story_id: Optional[str] = None
        self.current_phase: Optional[str] = None
        self.message_order = 0
        self.in_memory: List[Dict[str, Any]] = []

    def start_session(self, story_id: str, phase_name: str) -> str:
        self.current_session = str(uuid.uuid4())
        self.current_story_id = story_id
        self.current_phase = phase_name
        self.message_order = 0
        logger.info(f"Started session {self.current_session} for {phase_name} (story {story_id})")
        return self.current_session

    def set_phase(self, phase_name: str):
        self.current_phase = phase_name

    def log_message(self, message_type: MessageType, content: str, metadata: Dict[str, Any] = None):
        if not self.current_session:
            logger.warning("No active session - message not logged")
            return

        self.message_order += 1
        message = {
            "story_id": self.current_story_id,
            "conversation_session": self.current_session,
            "phase_name": self.current_phase,
            "message_type": MessageType(message_type).value,
            "message_order": self.message_order,
            "content": content,
            "metadata": {"timestamp": datetime.now(timezone.utc).isoformat(), **(metadata or {})},
        }
        self.in_memory.append(message)

        try:
            with session_scope(self._factory) as s:
                s.add(AIConversation(
                    story_id=message["story_id"],
                    conversation_session=message["conversation_session"],
                    phase_name=message["phase_name"],
                    message_type=message["message_type"],
                    message_order=message["message_order"],
                    content=content,
                    message_metadata=message["metadata"],
                ))
        except SQLAlchemyError as e:
            logger.error(f"Database save failed, message kept in memory: {e}")

    def log_query(self, prompt: str, metadata: Dict[str, Any] = None):
        self.log_message(MessageType.QUERY, prompt, metadata)

    def log_thinking(self, reasoning: str, metadata: Dict[str, Any] = None):
        self.log_message(MessageType.THINKING, reasoning, metadata)

    def log_response(self, response: str, metadata: Dict[str, Any] = None):
        self.log_message(MessageType.RESPONSE, response, metadata)

    def log_error(self, error: str, metadata: Dict[str, Any] = None):
        self.log_message(MessageType.ERROR, error, metadata)

    def log_system(self, message: str, metadata: Dict[str, Any] = None):
        self.log_message(MessageType.SYSTEM, message, metadata)

    def get_story_conversations(self, story_id: str) -> List[Dict[str, Any]]:
        """All logged messages of a story, oldest first. Falls back to memory."""
        try:
            with session_scope(self._factory) as s:
                rows = (
                    s.query(AIConversation)
                    .filter(AIConversation.story_id == story_id)
                    .order_by(AIConversation.created_at.asc(), AIConversation.message_order.asc())
                    .all()
                )
                return [
                    {
                        "story_id": r.story_id,
                        "conversation_session": r.conversation_session,
                        "phase_name": r.phase_name,
                        "message_type": r.message_type,
                        "message_order": r.message_order,
                        "content": r.content,
                        "metadata": r.message_metadata or {},
                    }
                    for r in rows
                ]
        except SQLAlchemyError as e:
            logger.error(f"Database read failed, serving memory backup: {e}")
            return [m for m in self.in_memory if m["story_id"] == story_id]

    def session_summary(self, session_id: str = None) -> Dict[str, Any]:
        session_id = session_id or self.current_session
        messages = [m for m in self.in_memory if m["conversation_session"] == session_id]
        return {
            "session_id": session_id,
            "messages": len(messages),
            "total_tokens": sum(m["metadata"].get("tokens_used") or 0 for m in messages),
            "total_cost": round(sum(m["metadata"].get("cost_estimate") or 0.0 for m in messages), 6),
        }
