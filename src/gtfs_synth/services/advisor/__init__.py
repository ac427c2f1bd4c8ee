"""Text generation advisor exports."""

from .ollama_client import Advice, AdviceOk, AdviceUnavailable, NarrativeAdvisor, extract_json_block
from .prompts import PromptKind, render_prompt

__all__ = [
    "Advice",
    "AdviceOk",
    "AdviceUnavailable",
    "NarrativeAdvisor",
    "PromptKind",
    "extract_json_block",
    "render_prompt",
]
