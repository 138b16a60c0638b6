# Overview: Tagged-union schema for per-item customization payloads.

"""
Order item customization.

Customization used to be an open JSON blob. It is now one of a closed set of
kinds, each with a documented shape, stored as:

    {"kind": "TEXT", "schema_version": 1, "data": {...}}

Adding a kind means adding a dataclass here and registering it in
CUSTOMIZATION_KINDS. Unknown kinds and newer schema versions are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from typing import ClassVar

from .validation import ValidationError


SCHEMA_VERSION = 1


@dataclass(frozen=True)
class TextCustomization:
    kind: ClassVar[str] = "TEXT"

    text: str
    font: str | None = None
    color: str | None = None

    def __post_init__(self):
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValidationError("TEXT customization requires non-empty text")
        if len(self.text) > 500:
            raise ValidationError("TEXT customization text exceeds 500 characters")


@dataclass(frozen=True)
class DesignCustomization:
    kind: ClassVar[str] = "DESIGN"

    design_id: int
    placement: str | None = None

    def __post_init__(self):
        if isinstance(self.design_id, bool) or not isinstance(self.design_id, int):
            raise ValidationError("DESIGN customization requires an integer design_id")


@dataclass(frozen=True)
class ImageCustomization:
    kind: ClassVar[str] = "IMAGE"

    image_url: str
    placement: str | None = None

    def __post_init__(self):
        if not isinstance(self.image_url, str) or not self.image_url.startswith(("http://", "https://", "/")):
            raise ValidationError("IMAGE customization requires an http(s) or relative image_url")


Customization = TextCustomization | DesignCustomization | ImageCustomization

CUSTOMIZATION_KINDS: dict[str, type] = {
    TextCustomization.kind: TextCustomization,
    DesignCustomization.kind: DesignCustomization,
    ImageCustomization.kind: ImageCustomization,
}


def parse_customization(raw) -> Customization | None:
    """Parse a client payload into a customization value (None when absent)."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("customization must be an object")

    kind = raw.get("kind")
    cls = CUSTOMIZATION_KINDS.get(kind)
    if cls is None:
        raise ValidationError(
            f"customization.kind must be one of: {', '.join(sorted(CUSTOMIZATION_KINDS))}"
        )

    version = raw.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise ValidationError(f"Unsupported customization schema_version: {version}")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("customization.data must be an object")

    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(f"Unknown customization fields for {kind}: {', '.join(unknown)}")

    try:
        return cls(**data)
    except TypeError:
        raise ValidationError(f"Missing required customization fields for {kind}")


def serialize_customization(value: Customization | None) -> dict | None:
    if value is None:
        return None
    return {"kind": value.kind, "schema_version": SCHEMA_VERSION, "data": asdict(value)}
