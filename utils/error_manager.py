import json
import os
import datetime
from typing import Dict, Any, List

from utils.logger import get_logger

logger = get_logger("error_manager")


class ErrorManager:
    """
    Keeps a rolling JSON log of failed provider calls (OpenAI, OpenRouter,
    storage, email) so operators can inspect them without database access.
    """

    LOG_FILE = os.getenv("AURACLE_ERROR_LOG", "outputs/api_errors.log")
    MAX_ENTRIES = 100

    @classmethod
    def log_error(
        cls,
        service: str,
        error_message: str,
        details: Any = None,
        severity: str = "error",
        story_id: str = None,
    ):
        """
        Append an error entry.

        Args:
            service: Component name (e.g., "ScenaristAgent", "ImageAgent")
            error_message: Brief error description
            details: Additional context or traceback
            severity: "warning", "error" or "critical"
            story_id: Story being processed, if any
        """
        entry = {
            "timestamp": datetime.datetime.now().isoformat(),
            "service": service,
            "message": error_message,
            "details": str(details) if details else None,
            "severity": severity,
            "story_id": story_id,
        }

        log_dir = os.path.dirname(cls.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        try:
            logs = cls._read_logs()
            logs.append(entry)
            logs = logs[-cls.MAX_ENTRIES:]

            with open(cls.LOG_FILE, "w", encoding="utf-8") as f:
                json.dump(logs, f, indent=2, ensure_ascii=False)

            logger.warning(f"[{severity.upper()}] {service}: {error_message}")
        except OSError as e:
            logger.error(f"Failed to write error log: {e} (original: [{service}] {error_message})")

    @classmethod
    def _read_logs(cls) -> List[Dict]:
        if not os.path.exists(cls.LOG_FILE):
            return []
        try:
            with open(cls.LOG_FILE, "r", encoding="utf-8") as f:
                content = f.read()
            return json.loads(content) if content.strip() else []
        except json.JSONDecodeError:
            return []

    @classmethod
    def get_recent_errors(cls, limit: int = 20) -> List[Dict]:
        """Most recent errors first."""
        logs = cls._read_logs()
        return sorted(logs, key=lambda x: x["timestamp"], reverse=True)[:limit]

    @classmethod
    def clear_logs(cls):
        if os.path.exists(cls.LOG_FILE):
            os.remove(cls.LOG_FILE)
