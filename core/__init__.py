"""Prompt enhancement core."""

from .enhancer import EnhancementResult, PromptEnhancer
from .templates import TEMPLATES, enhance_with_template

__all__ = [
    "EnhancementResult",
    "PromptEnhancer",
    "TEMPLATES",
    "enhance_with_template",
]
