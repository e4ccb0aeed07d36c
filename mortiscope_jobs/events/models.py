"""Payload models for every event that can reach the job coordinator.

Field names are snake_case in Python and camelCase on the wire, matching
what the web application sends.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

MIN_PASSWORD_LENGTH = 8
PASSWORD_TOO_SHORT = "Password must be at least 8 characters."

NonEmptyStr = Annotated[str, Field(min_length=1)]
Resolution = Literal["1280x720", "1920x1080", "3840x2160"]
PageSize = Literal["a4", "letter"]
SecurityLevel = Literal["standard", "view_protected", "permissions_protected"]


class EventPayload(BaseModel):
    """Base for all event payloads: camelCase aliases, no unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class PasswordProtection(EventPayload):
    enabled: bool = False
    password: str | None = Field(default=None, validate_default=True)

    @field_validator("password")
    @classmethod
    def _require_password_when_enabled(
        cls, value: str | None, info: ValidationInfo
    ) -> str | None:
        if not info.data.get("enabled"):
            return None
        if value is None or len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(PASSWORD_TOO_SHORT)
        return value


class PdfPermissions(EventPayload):
    """Document permission flags applied when the PDF is secured."""

    printing: bool = True
    copying: bool = False
    annotations: bool = True
    form_filling: bool = True
    assembly: bool = False
    extraction: bool = False
    page_rotation: bool = True
    degraded_printing: bool = True
    screen_reader: bool = True
    metadata_modification: bool = False


class AnalysisRequested(EventPayload):
    case_id: NonEmptyStr


class RecalculationRequested(EventPayload):
    case_id: NonEmptyStr


class CaseExportBase(EventPayload):
    export_id: NonEmptyStr
    case_id: NonEmptyStr
    user_id: str | None = None
    password_protection: PasswordProtection | None = None


class CaseRawDataExport(CaseExportBase):
    format: Literal["raw_data"]


class CaseLabelledImagesExport(CaseExportBase):
    format: Literal["labelled_images"]
    resolution: Resolution


class CasePdfExport(CaseExportBase):
    format: Literal["pdf"]
    page_size: PageSize
    security_level: SecurityLevel
    password: str | None = Field(default=None, validate_default=True)
    permissions: PdfPermissions | None = None

    @field_validator("password")
    @classmethod
    def _require_password_when_secured(
        cls, value: str | None, info: ValidationInfo
    ) -> str | None:
        security_level = info.data.get("security_level")
        if security_level is None or security_level == "standard":
            return value
        if value is None or len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(PASSWORD_TOO_SHORT)
        return value


CaseExportRequested = Annotated[
    CaseRawDataExport | CaseLabelledImagesExport | CasePdfExport,
    Field(discriminator="format"),
]


class ImageExportBase(EventPayload):
    export_id: NonEmptyStr
    upload_id: NonEmptyStr
    user_id: str | None = None
    password_protection: PasswordProtection | None = None


class ImageRawDataExport(ImageExportBase):
    format: Literal["raw_data"]


class ImageLabelledImagesExport(ImageExportBase):
    format: Literal["labelled_images"]
    resolution: Resolution


ImageExportRequested = Annotated[
    ImageRawDataExport | ImageLabelledImagesExport,
    Field(discriminator="format"),
]


class AccountDeletionConfirmed(EventPayload):
    token: NonEmptyStr


class AccountDeletionExecute(EventPayload):
    user_id: NonEmptyStr


class SessionTrack(EventPayload):
    user_id: NonEmptyStr
    session_token: NonEmptyStr
    last_active_at: datetime | None = None


class SessionCheckInactivity(EventPayload):
    user_id: NonEmptyStr
    session_token: NonEmptyStr
    last_active_at: datetime


class SessionScheduleDeletion(EventPayload):
    user_id: NonEmptyStr
    session_token: NonEmptyStr


class SessionDelete(EventPayload):
    user_id: NonEmptyStr
    session_token: NonEmptyStr


class SessionTriggerCleanup(EventPayload):
    pass
