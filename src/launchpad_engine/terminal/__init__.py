"""Agentic terminal layer - Scheduled per-subject content feeds."""

from launchpad_engine.terminal.broadcaster import (
    BroadcasterManager,
    BroadcasterState,
    BroadcasterStats,
    ScheduledBroadcaster,
)
from launchpad_engine.terminal.generator import (
    AnthropicContentGenerator,
    ContentGenerationError,
    ContentGenerator,
    fallback_content,
)
from launchpad_engine.terminal.models import (
    CONTENT_TYPES,
    ArchivedEntry,
    ContentEntry,
    SubjectDescriptor,
)

__all__ = [
    "CONTENT_TYPES",
    "AnthropicContentGenerator",
    "ArchivedEntry",
    "BroadcasterManager",
    "BroadcasterState",
    "BroadcasterStats",
    "ContentEntry",
    "ContentGenerationError",
    "ContentGenerator",
    "ScheduledBroadcaster",
    "SubjectDescriptor",
    "fallback_content",
]
