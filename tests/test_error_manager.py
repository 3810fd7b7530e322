"""
Persistent API error log tests.
"""
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils.error_manager import ErrorManager


class TestErrorManager:

    def test_log_and_read(self):
        ErrorManager.log_error("LLMClient", "o3 call failed", "timeout", severity="critical", story_id="s1")
        ErrorManager.log_error("ImageAgent", "Primary cover generation failed", severity="warning")

        errors = ErrorManager.get_recent_errors()
        assert len(errors) == 2
        assert {e["service"] for e in errors} == {"LLMClient", "ImageAgent"}
        llm_error = next(e for e in errors if e["service"] == "LLMClient")
        assert llm_error["details"] == "timeout"
        assert llm_error["story_id"] == "s1"

    def test_capped_at_max_entries(self, monkeypatch):
        monkeypatch.setattr(ErrorManager, "MAX_ENTRIES", 3)
        for i in range(5):
            ErrorManager.log_error("Storage", f"upload {i} failed")
        messages = [e["message"] for e in ErrorManager._read_logs()]
        assert messages == ["upload 2 failed", "upload 3 failed", "upload 4 failed"]

    def test_clear(self):
        ErrorManager.log_error("EmailService", "Confirmation email failed")
        ErrorManager.clear_logs()
        assert ErrorManager.get_recent_errors() == []

    def test_corrupt_file_reads_empty(self):
        with open(ErrorManager.LOG_FILE, "w", encoding="utf-8") as f:
            f.write("{not json")
        assert ErrorManager.get_recent_errors() == []
