"""Local record categories and their storage keys."""

from __future__ import annotations

from enum import StrEnum


class Category(StrEnum):
    """Local data groupings. Each value is the storage key holding it."""

    ARMY_LISTS = "heresy-3.0-army-lists"
    ARMY_LIST_METADATA = "heresy-3.0-army-lists-metadata"
    CUSTOM_DETACHMENTS = "customDetachments"
    CUSTOM_DETACHMENT_METADATA = "customDetachmentsMetadata"
    CUSTOM_UNITS = "heresy-custom-units"

    @property
    def key(self) -> str:
        return self.value


ALL_CATEGORIES: tuple[Category, ...] = tuple(Category)
