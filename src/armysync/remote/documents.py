"""Remote document models.

One remote collection per identity holds three documents: the combined
:class:`SyncedData` document and two :class:`MetadataDocument` indexes.
Wire field names are camelCase, shared with the web client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from armysync._clock import parse_iso


class SyncedData(BaseModel):
    """Main per-identity document.

    The three category fields are the verbatim deserialization of the
    corresponding local keys; their contents are never interpreted.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    army_lists: Any = Field(default_factory=dict)
    custom_detachments: Any = Field(default_factory=dict)
    custom_units: Any = Field(default_factory=dict)
    last_synced: str

    @field_validator("last_synced")
    @classmethod
    def _require_iso(cls, value: str) -> str:
        if parse_iso(value) is None:
            raise ValueError(f"lastSynced is not an ISO-8601 timestamp: {value!r}")
        return value

    @property
    def last_synced_at(self) -> datetime:
        parsed = parse_iso(self.last_synced)
        assert parsed is not None  # noqa: S101
        return parsed

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class MetadataDocument(BaseModel):
    """Lightweight listing index stored as ``{"data": <metadata>}``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    data: Any = None

    def to_document(self) -> dict[str, Any]:
        return {"data": self.data}


@dataclass(frozen=True, slots=True)
class DocumentWrite:
    """One write inside an atomic batch: a full ``set`` or a ``delete``."""

    name: str
    data: dict[str, Any] | None = field(default=None)

    @classmethod
    def set(cls, name: str, data: dict[str, Any]) -> DocumentWrite:
        return cls(name=name, data=data)

    @classmethod
    def delete(cls, name: str) -> DocumentWrite:
        return cls(name=name, data=None)

    @property
    def is_delete(self) -> bool:
        return self.data is None
