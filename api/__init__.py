"""Backend HTTP helpers."""

from . import huggingface, ollama
from .http import handle_response

__all__ = [
    "huggingface",
    "ollama",
    "handle_response",
]
