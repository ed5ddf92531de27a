"""Change events published by the album and photo services.

Each event kind is its own frozen dataclass with a fixed payload, so a
subscriber always knows exactly what it receives.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class AlbumsUpdated:
    """An album was created or deleted, or a bulk ordering change committed."""

    name: ClassVar[str] = "albums-updated"


@dataclass(frozen=True)
class AlbumRenamed:
    name: ClassVar[str] = "album-renamed"

    album_id: int
    custom_name: str | None


@dataclass(frozen=True)
class AlbumReordered:
    name: ClassVar[str] = "album-reordered"

    album_id: int
    order: int


@dataclass(frozen=True)
class PhotosUpdated:
    name: ClassVar[str] = "photos-updated"


@dataclass(frozen=True)
class PreferenceChanged:
    name: ClassVar[str] = "preference-changed"

    key: str
    value: Any


@dataclass(frozen=True)
class ErrorOccurred:
    name: ClassVar[str] = "error-occurred"

    error: BaseException


@dataclass(frozen=True)
class LoadingStarted:
    name: ClassVar[str] = "loading-started"


@dataclass(frozen=True)
class LoadingEnded:
    name: ClassVar[str] = "loading-ended"


EVENT_TYPES: tuple[type, ...] = (
    AlbumsUpdated,
    AlbumRenamed,
    AlbumReordered,
    PhotosUpdated,
    PreferenceChanged,
    ErrorOccurred,
    LoadingStarted,
    LoadingEnded,
)

EVENTS_BY_NAME: dict[str, type] = {cls.name: cls for cls in EVENT_TYPES}
