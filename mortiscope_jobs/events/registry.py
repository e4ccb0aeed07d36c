"""Closed catalog of event names and their payload shapes."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from mortiscope_jobs.events.exceptions import SchemaValidationError, UnknownEventError
from mortiscope_jobs.events.models import (
    AccountDeletionConfirmed,
    AccountDeletionExecute,
    AnalysisRequested,
    CaseExportRequested,
    ImageExportRequested,
    RecalculationRequested,
    SessionCheckInactivity,
    SessionDelete,
    SessionScheduleDeletion,
    SessionTrack,
    SessionTriggerCleanup,
)

_TAG_ERRORS = frozenset({"union_tag_invalid", "union_tag_not_found"})


class EventName:
    ANALYSIS_REQUESTED = "analysis/request.sent"
    RECALCULATION_REQUESTED = "recalculation/case.requested"
    CASE_EXPORT_REQUESTED = "export/case.data.requested"
    IMAGE_EXPORT_REQUESTED = "export/image.data.requested"
    ACCOUNT_DELETION_CONFIRMED = "account/deletion.confirmed"
    ACCOUNT_DELETION_EXECUTE = "account/deletion.execute"
    SESSION_TRACK = "account/session.track"
    SESSION_CHECK_INACTIVITY = "account/session.check-inactivity"
    SESSION_SCHEDULE_DELETION = "account/session.schedule-deletion"
    SESSION_DELETE = "account/session.delete"
    SESSION_TRIGGER_CLEANUP = "account/session.trigger-cleanup"


@dataclass(frozen=True)
class EventSchema:
    """Payload shape of one event; `discriminator` is set for tagged unions."""

    adapter: TypeAdapter[Any]
    discriminator: str | None = None


class EventRegistry:
    """Maps each event name to exactly one payload shape."""

    SCHEMAS: ClassVar[dict[str, EventSchema]] = {
        EventName.ANALYSIS_REQUESTED: EventSchema(TypeAdapter(AnalysisRequested)),
        EventName.RECALCULATION_REQUESTED: EventSchema(TypeAdapter(RecalculationRequested)),
        EventName.CASE_EXPORT_REQUESTED: EventSchema(
            TypeAdapter(CaseExportRequested), discriminator="format"
        ),
        EventName.IMAGE_EXPORT_REQUESTED: EventSchema(
            TypeAdapter(ImageExportRequested), discriminator="format"
        ),
        EventName.ACCOUNT_DELETION_CONFIRMED: EventSchema(
            TypeAdapter(AccountDeletionConfirmed)
        ),
        EventName.ACCOUNT_DELETION_EXECUTE: EventSchema(TypeAdapter(AccountDeletionExecute)),
        EventName.SESSION_TRACK: EventSchema(TypeAdapter(SessionTrack)),
        EventName.SESSION_CHECK_INACTIVITY: EventSchema(TypeAdapter(SessionCheckInactivity)),
        EventName.SESSION_SCHEDULE_DELETION: EventSchema(
            TypeAdapter(SessionScheduleDeletion)
        ),
        EventName.SESSION_DELETE: EventSchema(TypeAdapter(SessionDelete)),
        EventName.SESSION_TRIGGER_CLEANUP: EventSchema(TypeAdapter(SessionTriggerCleanup)),
    }

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls.SCHEMAS)

    @classmethod
    def validate_payload(cls, name: str, data: Any) -> BaseModel:
        """Validate raw event data against the shape registered for `name`.

        Raises:
            UnknownEventError: if `name` is not a registered event.
            SchemaValidationError: naming the first offending field.
        """
        schema = cls.SCHEMAS.get(name)
        if schema is None:
            raise UnknownEventError(name)
        if isinstance(data, BaseModel):
            data = serialize_payload(data)
        try:
            return schema.adapter.validate_python(data)
        except ValidationError as exc:
            error = exc.errors()[0]
            raise SchemaValidationError(
                name, _field_path(error, schema.discriminator), error["msg"]
            ) from exc


@dataclass(frozen=True)
class Event:
    """An immutable, validated event ready for delivery."""

    name: str
    data: BaseModel
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ts: datetime | None = None


def build_event(name: str, data: Any, ts: datetime | None = None) -> Event:
    """Validate `data` for `name` and wrap it into an Event."""
    return Event(name=name, data=EventRegistry.validate_payload(name, data), ts=ts)


def serialize_payload(payload: BaseModel) -> dict[str, Any]:
    """Dump a payload model back to its camelCase wire form."""
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


def _field_path(error: Any, discriminator: str | None) -> str:
    if error["type"] in _TAG_ERRORS and discriminator is not None:
        return discriminator
    loc = list(error["loc"])
    if discriminator is not None and loc:
        # Tagged-union errors are prefixed with the tag value.
        loc = loc[1:]
    return ".".join(str(part) for part in loc) or "data"
