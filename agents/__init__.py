"""
AURACLE Agents Package

- LLMClient: OpenAI / OpenRouter completion wrapper
- ScenaristAgent: five-phase story analysis (story DNA, characters, chapters, production, cover prompt)
- ImageAgent: cover poster generation
"""

from .llm_client import LLMClient, LLMResult
from .scenarist_agent import ScenaristAgent
from .image_agent import ImageAgent

__all__ = [
    "LLMClient",
    "LLMResult",
    "ScenaristAgent",
    "ImageAgent",
]
