"""Photo registration into date-based albums."""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import PurePath
from typing import Generator, Iterable

from photo_albums.albums.organizer import AlbumOrganizer
from photo_albums.db.manager import DatabaseManager, StoreError
from photo_albums.db.models import Photo, PhotoStats
from photo_albums.events.events import (
    ErrorOccurred,
    LoadingEnded,
    LoadingStarted,
    PhotosUpdated,
)
from photo_albums.events.notifier import ChangeNotifier
from photo_albums.grouping.date_keys import Timestamp, to_local_datetime

logger = logging.getLogger(__name__)

DEFAULT_SUPPORTED_FORMATS = ("jpg", "jpeg", "png", "webp", "gif", "svg")


@dataclass
class PhotoImport:
    """Metadata for a photo to register. The file itself is never read."""

    file_path: str
    date_taken: Timestamp
    filename: str | None = None
    file_size: int = 0
    thumbnail: bytes | None = None


class PhotoCatalog:
    """Register photos in the album for their date and keep observers informed."""

    def __init__(
        self,
        db: DatabaseManager,
        organizer: AlbumOrganizer,
        notifier: ChangeNotifier,
        supported_formats: Iterable[str] = DEFAULT_SUPPORTED_FORMATS,
    ):
        self._db = db
        self._organizer = organizer
        self._notifier = notifier
        self._supported_formats = {
            fmt.lower().lstrip(".") for fmt in supported_formats
        }

    # --- Import ---

    def import_photo(self, item: PhotoImport) -> Photo:
        """Add one photo to the album for its date, creating the album if needed.

        The album and the photo are written together: if the photo is
        rejected, an album created for it is rolled back as well.
        """
        with self._reporting_errors(f"Failed to import photo {item.file_path}"):
            with self._db.transaction():
                photo_id = self._db.add_photo(**self._photo_fields(item))
                photo = self._db.get_photo(photo_id)
                self._notify(PhotosUpdated())
        return photo

    def import_photos(self, items: Iterable[PhotoImport]) -> list[Photo]:
        """Add a batch of photos and the albums they need, all or nothing."""
        items = list(items)
        self._notifier.publish(LoadingStarted())
        try:
            with self._reporting_errors(f"Batch import of {len(items)} photo(s) failed"):
                with self._db.transaction():
                    rows = [self._photo_fields(item) for item in items]
                    photo_ids = self._db.add_photos(rows)
                    photos = [self._db.get_photo(photo_id) for photo_id in photo_ids]
        finally:
            self._notifier.publish(LoadingEnded())
        logger.info(f"Imported {len(photos)} photo(s)")
        self._notify(PhotosUpdated())
        return photos

    def is_supported_format(self, filename: str) -> bool:
        return PurePath(filename).suffix.lower().lstrip(".") in self._supported_formats

    def validate_files_for_import(
        self, paths: Iterable[str]
    ) -> tuple[list[str], list[tuple[str, str]]]:
        """Split paths into supported ones and (path, reason) rejections."""
        valid: list[str] = []
        invalid: list[tuple[str, str]] = []
        for path in paths:
            if self.is_supported_format(path):
                valid.append(path)
            else:
                suffix = PurePath(path).suffix or "(none)"
                invalid.append((path, f"Unsupported format: {suffix}"))
        return valid, invalid

    # --- Queries ---

    def get_photo(self, photo_id: int) -> Photo | None:
        return self._db.get_photo(photo_id)

    def get_photos_by_album(self, album_id: int) -> list[Photo]:
        return self._db.get_photos_by_album(album_id)

    def get_all_photos(self) -> list[Photo]:
        return self._db.get_all_photos()

    def get_album_cover(self, album_id: int) -> Photo | None:
        """The album's newest photo, or None for an empty album."""
        photos = self._db.get_photos_by_album(album_id)
        return photos[0] if photos else None

    def get_photo_count_by_album(self, album_id: int) -> int:
        return self._db.get_photo_count(album_id)

    def get_photo_stats(self) -> PhotoStats:
        photos = self._db.get_all_photos()
        if not photos:
            return PhotoStats()
        return PhotoStats(
            total_photos=len(photos),
            avg_photo_size=sum(p.file_size for p in photos) / len(photos),
        )

    # --- Updates ---

    def update_thumbnail(self, photo_id: int, thumbnail: bytes | None) -> bool:
        with self._reporting_errors(f"Failed to update thumbnail of photo {photo_id}"):
            changed = self._db.update_photo_thumbnail(photo_id, thumbnail)
        if changed:
            self._notify(PhotosUpdated())
        return changed

    def delete_photo(self, photo_id: int) -> bool:
        with self._reporting_errors(f"Failed to delete photo {photo_id}"):
            deleted = self._db.delete_photo(photo_id)
        if deleted:
            self._notify(PhotosUpdated())
        return deleted

    # --- Private helpers ---

    def _photo_fields(self, item: PhotoImport) -> dict:
        date_taken = to_local_datetime(item.date_taken)
        album = self._organizer.ensure_album_for_date(date_taken)
        return {
            "album_id": album.id,
            "file_path": item.file_path,
            "filename": item.filename or PurePath(item.file_path).name,
            "date_taken": date_taken,
            "file_size": item.file_size,
            "thumbnail": item.thumbnail,
        }

    def _notify(self, event) -> None:
        self._db.after_commit(functools.partial(self._notifier.publish, event))

    @contextmanager
    def _reporting_errors(self, message: str) -> Generator[None, None, None]:
        try:
            yield
        except StoreError as e:
            if not e.reported:
                e.reported = True
                logger.error(f"{message}: {e}")
                self._notifier.publish(ErrorOccurred(e))
            raise
