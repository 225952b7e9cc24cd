"""Init file for AI services."""

from .client import GenerationClient, GenerationRequest, OllamaClient
from .structured import CallBudget, StructuredCaller


__all__ = [
    "CallBudget",
    "GenerationClient",
    "GenerationRequest",
    "OllamaClient",
    "StructuredCaller",
]
