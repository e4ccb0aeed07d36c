from mortiscope_jobs.events.exceptions import SchemaValidationError, UnknownEventError
from mortiscope_jobs.events.registry import (
    Event,
    EventName,
    EventRegistry,
    build_event,
    serialize_payload,
)

__all__ = [
    "Event",
    "EventName",
    "EventRegistry",
    "SchemaValidationError",
    "UnknownEventError",
    "build_event",
    "serialize_payload",
]
