"""Model-backed helpers: routing classifier, personality, local responses, memory extraction."""

from .classifier import FallbackNewClassifier, LLMTaskClassifier, create_classifier
from .llm_client import LLMCompletionClient, create_llm_client
from .local_responder import LocalResponder, LocalResponse
from .memory_extractor import MemoryExtractor
from .personality import LLMPersonalityRenderer, NullPersonalityRenderer, create_personality_renderer
from .prompts import PromptTemplates

__all__ = [
    "FallbackNewClassifier",
    "LLMTaskClassifier",
    "create_classifier",
    "LLMCompletionClient",
    "create_llm_client",
    "LocalResponder",
    "LocalResponse",
    "MemoryExtractor",
    "LLMPersonalityRenderer",
    "NullPersonalityRenderer",
    "create_personality_renderer",
    "PromptTemplates",
]
