from .bus import Subscription, TopicBus, project_topic
from .events import (
    ElementAdded,
    Error,
    GenerationCompleted,
    GenerationStarted,
    Info,
    OrchestrationEvent,
    TextChunk,
    event_from_wire,
)

__all__ = [
    "ElementAdded",
    "Error",
    "GenerationCompleted",
    "GenerationStarted",
    "Info",
    "OrchestrationEvent",
    "Subscription",
    "TextChunk",
    "TopicBus",
    "event_from_wire",
    "project_topic",
]
