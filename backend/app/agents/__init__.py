"""Agent nodes package."""
from .generator import generate_node
from .safety_guardian import safety_guardian_node
from .fallback import fallback_node
from .finalize import finalize_node
from .llm import LLMClient

__all__ = [
    "generate_node",
    "safety_guardian_node",
    "fallback_node",
    "finalize_node",
    "LLMClient",
]
