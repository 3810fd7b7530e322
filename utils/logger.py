import logging
import logging.handlers
import sys
import os

FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the 'auracle' namespace.

    LOG_LEVEL sets the level (default INFO); AURACLE_LOG_FILE additionally
    writes to a rotating file.
    """
    logger = logging.getLogger(f"auracle.{name}")
    if not logger.handlers:
        formatter = logging.Formatter(FORMAT, datefmt=DATE_FORMAT)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        log_file = os.getenv("AURACLE_LOG_FILE")
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        logger.propagate = False
    return logger


class StoryLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the story being processed."""

    def process(self, msg, kwargs):
        return f"[story {self.extra['story_id']}] {msg}", kwargs
