"""Data models for Photo Albums."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class AutoSorted:
    """Album positioned by its grouping key, newest period first."""

    group_key: str


@dataclass(frozen=True)
class ManualOrder:
    """Album pinned at an explicit position among manual albums."""

    order: int


Regime = Union[AutoSorted, ManualOrder]


@dataclass
class Album:
    """A time-bucket album as read from the database."""

    id: int
    group_key: str
    title: str
    regime: Regime
    custom_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_auto_sorted(self) -> bool:
        return isinstance(self.regime, AutoSorted)

    @property
    def order(self) -> int | None:
        """Manual position, or None for auto-sorted albums."""
        if isinstance(self.regime, ManualOrder):
            return self.regime.order
        return None


@dataclass
class Photo:
    """A photo registered in an album."""

    id: int
    album_id: int
    file_path: str
    filename: str
    date_taken: datetime
    file_size: int = 0
    thumbnail: bytes | None = None
    date_added: datetime | None = None


@dataclass
class AlbumStats:
    total_albums: int = 0
    total_photos: int = 0
    auto_sorted_albums: int = 0
    manual_order_albums: int = 0
    avg_photos_per_album: float = 0.0


@dataclass
class PhotoStats:
    total_photos: int = 0
    avg_photo_size: float = 0.0
