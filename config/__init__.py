"""
AURACLE Configuration Loader
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

# Default config directory
CONFIG_DIR = Path(__file__).parent

DEFAULT_DATABASE_URL = "sqlite:///outputs/auracle.db"
DEFAULT_APP_BASE_URL = "http://localhost:5173"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def load_pipeline_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load pipeline settings.

    Args:
        config_path: YAML path (default: config/pipeline.yaml)

    Returns:
        Settings dictionary; built-in defaults if the file is missing
    """
    if config_path is None:
        config_path = os.getenv("AURACLE_CONFIG", CONFIG_DIR / "pipeline.yaml")

    if not os.path.exists(config_path):
        return get_default_pipeline_config()

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return config


def get_default_pipeline_config() -> Dict[str, Any]:
    return {
        "phases": get_default_phase_models(),
        "pricing": get_default_pricing(),
        "reasoning_memory": {"min_quality": 8, "recall_limit": 2},
        "cover_image": get_default_cover_image_config(),
        "dashboard_panels": get_default_dashboard_panels(),
    }


def get_default_phase_models() -> Dict[str, Any]:
    return {
        "phase1_storyDNA": {"model": "o3", "max_tokens": 4000, "reasoning_effort": "high"},
        "phase2_characters": {"model": "o4-mini", "max_tokens": 5000, "reasoning_effort": "high"},
        "phase3_narrative": {"model": "gpt-4o-mini", "max_tokens": 6000},
        "phase4_production": {"model": "gpt-4o-mini", "max_tokens": 2000},
        "phase5_coverImage": {"model": "gpt-4o-mini", "max_tokens": 1500},
    }


def get_default_pricing() -> Dict[str, float]:
    """USD per 1M tokens. Output includes reasoning tokens."""
    return {
        "input": 2.00,
        "output": 8.00,
        "cached": 0.50,
        "image": 0.187,
    }


def get_default_cover_image_config() -> Dict[str, Any]:
    return {
        "primary_model": "gpt-4o",
        "size": "1024x1536",
        "quality": "high",
        "fallback_model": "dall-e-3",
        "fallback_size": "1024x1024",
        "bucket_prefix": "story-covers",
    }


def get_default_dashboard_panels() -> Dict[str, list]:
    return {
        "free": ["stories", "portfolio"],
        "pro": ["stories", "portfolio", "processing_terminal", "model_selector", "image_generation"],
        "enterprise": [
            "stories", "portfolio", "processing_terminal", "model_selector",
            "image_generation", "team", "analytics",
        ],
        "admin": [
            "stories", "portfolio", "processing_terminal", "model_selector",
            "image_generation", "team", "analytics", "ai_debug", "users",
        ],
    }


def get_phase_model_config(phase: str) -> Dict[str, Any]:
    """Model settings for one pipeline phase."""
    config = load_pipeline_config()
    phases = config.get("phases", {})
    defaults = get_default_phase_models()
    return {**defaults.get(phase, {}), **phases.get(phase, {})}


def get_pricing() -> Dict[str, float]:
    config = load_pipeline_config()
    return {**get_default_pricing(), **config.get("pricing", {})}


def get_reasoning_memory_config() -> Dict[str, Any]:
    config = load_pipeline_config()
    return config.get("reasoning_memory", {"min_quality": 8, "recall_limit": 2})


def get_cover_image_config() -> Dict[str, Any]:
    config = load_pipeline_config()
    return {**get_default_cover_image_config(), **config.get("cover_image", {})}


def get_dashboard_panels() -> Dict[str, list]:
    config = load_pipeline_config()
    return config.get("dashboard_panels", get_default_dashboard_panels())


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_app_base_url() -> str:
    """Public URL of the web app, used for links in outgoing email."""
    return os.getenv("APP_BASE_URL", DEFAULT_APP_BASE_URL)
