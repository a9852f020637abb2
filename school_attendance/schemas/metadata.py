"""
Typed source metadata carried by identity records and attendance events.

Every stored mapping parses to exactly one variant. Shapes that match none of
the known variants are kept verbatim in ``UnknownMetadata`` instead of being
read as an untyped dict.
"""
import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError


class RegistrationMetadata(BaseModel):
    """Enrollment details captured when a face is registered."""

    type: Literal["registration"] = "registration"
    name: Optional[str] = None
    employee_id: Optional[str] = None
    device: str = "webcam"
    registered_at: Optional[datetime.datetime] = None


class CaptureMetadata(BaseModel):
    """Details of a recognition capture that produced an attendance event."""

    type: Literal["capture"] = "capture"
    camera_id: Optional[str] = None
    confidence: Optional[float] = None
    user_agent: Optional[str] = None
    captured_at: Optional[datetime.datetime] = None


class SystemMetadata(BaseModel):
    """Events written by the service itself, e.g. end-of-day absence marking."""

    type: Literal["system"] = "system"
    automatic: bool = True
    name: Optional[str] = None
    recorded_at: Optional[datetime.datetime] = None


class UnknownMetadata(BaseModel):
    type: Literal["unknown"] = "unknown"
    raw: dict[str, Any] = Field(default_factory=dict)


EventMetadata = Union[
    RegistrationMetadata, CaptureMetadata, SystemMetadata, UnknownMetadata
]

_VARIANTS: dict[str, type[BaseModel]] = {
    "registration": RegistrationMetadata,
    "capture": CaptureMetadata,
    "system": SystemMetadata,
}


def _legacy_shape(raw: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    # Older rows nest the payload: {"type": "webcam", "registration": true,
    # "metadata": {...}, "timestamp": ...}
    nested = raw.get("metadata")
    if not isinstance(nested, dict):
        return None, raw
    if raw.get("registration"):
        return "registration", {
            "name": nested.get("name"),
            "employee_id": nested.get("employee_id"),
            "device": raw.get("type") or "webcam",
            "registered_at": raw.get("timestamp"),
        }
    if raw.get("type") == "system":
        return "system", {
            "automatic": bool(raw.get("automatic", True)),
            "name": nested.get("name"),
            "recorded_at": raw.get("timestamp"),
        }
    return None, raw


def parse_metadata(raw: Any) -> Optional[EventMetadata]:
    """Map a stored mapping (or an already-parsed variant) to a metadata variant."""
    if raw is None:
        return None
    if isinstance(
        raw, (RegistrationMetadata, CaptureMetadata, SystemMetadata, UnknownMetadata)
    ):
        return raw
    if not isinstance(raw, dict):
        return UnknownMetadata(raw={"value": raw})

    kind, payload = _legacy_shape(raw)
    if kind is None:
        kind = raw.get("type")
    variant = _VARIANTS.get(kind) if isinstance(kind, str) else None
    if variant is None:
        return UnknownMetadata(raw=raw)

    try:
        return variant.model_validate({**payload, "type": kind})
    except ValidationError:
        return UnknownMetadata(raw=raw)


def metadata_name(metadata: Optional[EventMetadata]) -> Optional[str]:
    """Display name recorded in the metadata, if the variant carries one."""
    if metadata is None:
        return None
    if isinstance(metadata, (RegistrationMetadata, SystemMetadata)):
        return metadata.name
    if isinstance(metadata, CaptureMetadata):
        return None
    if isinstance(metadata, UnknownMetadata):
        name = metadata.raw.get("name")
        return name if isinstance(name, str) else None
    raise TypeError(f"Unhandled metadata variant: {type(metadata).__name__}")


def dump_metadata(metadata: Optional[EventMetadata]) -> Optional[dict[str, Any]]:
    if metadata is None:
        return None
    if isinstance(metadata, UnknownMetadata):
        return dict(metadata.raw)
    return metadata.model_dump(mode="json")
