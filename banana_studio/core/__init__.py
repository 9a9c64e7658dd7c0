"""
Core scheduling and Gemini image generation logic.

Everything here is host-agnostic: a host provides a tick source, images and
credentials, and receives progress events and a GenerationResult.
"""

from banana_studio.core.scheduler import (
    TaskScheduler,
    TaskState,
    ScheduledTask,
)
from banana_studio.core.tick import (
    TickSource,
    ManualTickSource,
    TextualTickSource,
)
from banana_studio.core.progress import ProgressBroadcaster
from banana_studio.core.models import (
    GenerationRequest,
    GenerationResult,
    MAX_OBJECT_REFERENCES,
    MAX_HUMAN_REFERENCES,
)
from banana_studio.core.gemini_api import GeminiImageClient

__all__ = [
    "TaskScheduler",
    "TaskState",
    "ScheduledTask",
    "TickSource",
    "ManualTickSource",
    "TextualTickSource",
    "ProgressBroadcaster",
    "GenerationRequest",
    "GenerationResult",
    "MAX_OBJECT_REFERENCES",
    "MAX_HUMAN_REFERENCES",
    "GeminiImageClient",
]
