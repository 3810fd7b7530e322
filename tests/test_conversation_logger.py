"""
Conversation log and reasoning memory tests.
"""
import sys
import os
import pytest
from sqlalchemy import create_engine

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils.conversation_logger import ConversationLogger
from utils.reasoning_memory import ReasoningMemoryStore


@pytest.fixture
def broken_engine():
    """Engine whose tables were never created."""
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


class TestConversationLogger:

    def test_messages_ordered_within_session(self, engine):
        log = ConversationLogger(engine)
        session_id = log.start_session("story-1", "phase1_storyDNA")
        log.log_query("Analyze this", {"model": "o3"})
        log.log_thinking("Considering the structure")
        log.log_response('{"ok": true}', {"tokens_used": 1200, "cost_estimate": 0.01})

        messages = log.get_story_conversations("story-1")
        assert [m["message_type"] for m in messages] == ["query", "thinking", "response"]
        assert [m["message_order"] for m in messages] == [1, 2, 3]
        assert all(m["conversation_session"] == session_id for m in messages)
        assert messages[0]["metadata"]["model"] == "o3"

    def test_new_session_restarts_order(self, engine):
        log = ConversationLogger(engine)
        log.start_session("story-1", "phase1_storyDNA")
        log.log_system("first")
        log.start_session("story-1", "phase2_characters")
        log.log_system("second")
        assert log.in_memory[-1]["message_order"] == 1
        assert log.in_memory[-1]["phase_name"] == "phase2_characters"

    def test_set_phase(self, engine):
        log = ConversationLogger(engine)
        log.start_session("story-1", "phase1_storyDNA")
        log.set_phase("phase3_narrative")
        log.log_error("bad json")
        assert log.in_memory[0]["phase_name"] == "phase3_narrative"
        assert log.in_memory[0]["message_type"] == "error"

    def test_no_session_drops_message(self, engine):
        log = ConversationLogger(engine)
        log.log_query("orphan")
        assert log.in_memory == []

    def test_database_failure_keeps_memory(self, broken_engine):
        log = ConversationLogger(broken_engine)
        log.start_session("story-2", "phase1_storyDNA")
        log.log_query("prompt")
        log.log_response("answer")
        messages = log.get_story_conversations("story-2")
        assert [m["content"] for m in messages] == ["prompt", "answer"]

    def test_session_summary(self, engine):
        log = ConversationLogger(engine)
        log.start_session("story-1", "phase1_storyDNA")
        log.log_response("a", {"tokens_used": 1000, "cost_estimate": 0.0068})
        log.log_response("b", {"tokens_used": 500, "cost_estimate": 0.0032})
        log.log_system("done")
        summary = log.session_summary()
        assert summary["messages"] == 3
        assert summary["total_tokens"] == 1500
        assert summary["total_cost"] == pytest.approx(0.01)


class TestReasoningMemory:

    def test_low_quality_not_saved(self, engine):
        memory = ReasoningMemoryStore(engine, min_quality=8)
        assert memory.save("s1", "phase1_storyDNA", [{"id": "rs_1"}], 6) is False
        assert memory.recall("phase1_storyDNA") == []

    def test_empty_items_not_saved(self, engine):
        memory = ReasoningMemoryStore(engine, min_quality=8)
        assert memory.save("s1", "phase1_storyDNA", [], 10) is False

    def test_recall_best_patterns_first(self, engine):
        memory = ReasoningMemoryStore(engine, min_quality=8)
        memory.save("s1", "phase1_storyDNA", [{"id": "rs_a"}], 8)
        memory.save("s2", "phase1_storyDNA", [{"id": "rs_b"}, {"id": "rs_c"}], 9.5)
        memory.save("s3", "phase2_characters", [{"id": "rs_d"}], 10)

        assert memory.recall("phase1_storyDNA", limit=1) == [{"id": "rs_b"}, {"id": "rs_c"}]
        assert len(memory.recall("phase1_storyDNA", limit=5)) == 3

    def test_database_failure_recalls_nothing(self, broken_engine):
        memory = ReasoningMemoryStore(broken_engine, min_quality=8)
        assert memory.save("s1", "phase1_storyDNA", [{"id": "rs_1"}], 9) is False
        assert memory.recall("phase1_storyDNA") == []
