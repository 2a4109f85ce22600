"""Prompt context building."""

from avoidmem.context.builder import (
    FIRST_SESSION_CONTEXT,
    ContextOptions,
    build_memory_context,
    build_memory_context_detailed,
)

__all__ = [
    "FIRST_SESSION_CONTEXT",
    "ContextOptions",
    "build_memory_context",
    "build_memory_context_detailed",
]
