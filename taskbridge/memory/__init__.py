"""Durable user memory: explicit capture, LLM extraction, dedupe/supersede, retrieval."""

from .explicit import detect_explicit_memories, detect_explicit_memory
from .maintenance import run_memory_maintenance
from .retrieval import (
    format_memories_for_prompt,
    get_memories_for_local_response,
    get_memories_for_task_prompt,
)
from .service import MemoryService, classify_against_existing, compute_expiry, normalize_for_compare

__all__ = [
    "detect_explicit_memories",
    "detect_explicit_memory",
    "run_memory_maintenance",
    "format_memories_for_prompt",
    "get_memories_for_local_response",
    "get_memories_for_task_prompt",
    "MemoryService",
    "classify_against_existing",
    "compute_expiry",
    "normalize_for_compare",
]
