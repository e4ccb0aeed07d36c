"""Translate camelCase event payloads into the compute worker's snake_case bodies.

Each export format owns a fixed set of fields: `resolution` only for
labelled images, page/security/permission fields only for PDF reports.
"""

from typing import Any

from mortiscope_jobs.events.models import (
    CaseLabelledImagesExport,
    CasePdfExport,
    CaseRawDataExport,
    ImageLabelledImagesExport,
    ImageRawDataExport,
    PasswordProtection,
    PdfPermissions,
)


def build_password_protection(protection: PasswordProtection | None) -> dict[str, Any]:
    """Always present in export bodies; password only when enabled."""
    if protection is None or not protection.enabled:
        return {"enabled": False}
    return {"enabled": True, "password": protection.password}


def build_permissions(permissions: PdfPermissions | None) -> dict[str, bool]:
    return (permissions or PdfPermissions()).model_dump(mode="json")


def build_case_export_payload(
    data: CaseRawDataExport | CaseLabelledImagesExport | CasePdfExport,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "export_id": data.export_id,
        "case_id": data.case_id,
        "format": data.format,
        "password_protection": build_password_protection(data.password_protection),
    }
    if isinstance(data, CaseRawDataExport):
        return payload
    if isinstance(data, CaseLabelledImagesExport):
        payload["resolution"] = data.resolution
        return payload
    if isinstance(data, CasePdfExport):
        payload["page_size"] = data.page_size
        payload["security_level"] = data.security_level
        payload["permissions"] = build_permissions(data.permissions)
        if data.password is not None:
            payload["password"] = data.password
        return payload
    raise TypeError(f"Unsupported case export payload: {type(data).__name__}")


def build_image_export_payload(
    data: ImageRawDataExport | ImageLabelledImagesExport,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "export_id": data.export_id,
        "upload_id": data.upload_id,
        "format": data.format,
        "password_protection": build_password_protection(data.password_protection),
    }
    if isinstance(data, ImageRawDataExport):
        return payload
    if isinstance(data, ImageLabelledImagesExport):
        payload["resolution"] = data.resolution
        return payload
    raise TypeError(f"Unsupported image export payload: {type(data).__name__}")
