"""Album ordering: automatic date-sorted albums and manually pinned albums."""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Generator, Iterable

from photo_albums.db.manager import DatabaseManager, StoreError
from photo_albums.db.models import Album, AlbumStats
from photo_albums.events.events import (
    AlbumRenamed,
    AlbumReordered,
    AlbumsUpdated,
    ErrorOccurred,
)
from photo_albums.events.notifier import ChangeNotifier
from photo_albums.grouping.date_keys import Timestamp, group_key

logger = logging.getLogger(__name__)


def display_name(album: Album) -> str:
    """Return the first non-empty of custom name, title, and grouping key."""
    return album.custom_name or album.title or album.group_key


class _BatchRejected(Exception):
    """Raised inside a transaction to roll back a batch reorder."""


class AlbumOrganizer:
    """Creates albums for incoming photos and owns every ordering decision.

    Albums start out auto-sorted by their grouping key. Reordering pins an
    album to an explicit position (manual regime) until it is reset. Nothing
    is cached: each call reads and writes through the database, and events
    are published only after the write has committed. Inside an enclosing
    ``db.transaction()`` they wait for the outermost commit and are dropped
    on rollback.
    """

    def __init__(
        self,
        db: DatabaseManager,
        notifier: ChangeNotifier,
        group_by: str = "week",
    ):
        self._db = db
        self._notifier = notifier
        # Fail fast on a bad granularity
        group_key("2000-01-01", group_by)
        self._group_by = group_by

    @property
    def group_by(self) -> str:
        return self._group_by

    def get_album(self, album_id: int) -> Album | None:
        return self._db.get_album(album_id)

    def list_albums(self) -> list[Album]:
        return self._db.list_albums()

    def ensure_album_for_date(self, timestamp: Timestamp) -> Album:
        """Return the album covering ``timestamp``, creating it if needed."""
        key = group_key(timestamp, self._group_by)
        with self._reporting_errors():
            existing = self._db.get_album_by_group_key(key)
            if existing is not None:
                return existing
            album_id = self._db.insert_album(group_key=key, title=key)
            album = self._db.get_album(album_id)
        logger.info(f"Created album {key} (id={album_id})")
        self._notify(AlbumsUpdated())
        return album

    def rename_album(self, album_id: int, custom_name: str | None) -> bool:
        """Set or clear (None or "") the album's display name override."""
        custom_name = custom_name or None
        with self._reporting_errors():
            changed = self._db.update_album(album_id, custom_name=custom_name)
        if changed:
            self._notify(AlbumRenamed(album_id, custom_name))
        return changed

    def reorder_album(self, album_id: int, new_order: int) -> bool:
        """Pin an album at ``new_order``, moving it into the manual regime."""
        with self._reporting_errors():
            changed = self._db.update_album(
                album_id, order=new_order, is_auto_sorted=False
            )
        if changed:
            self._notify(AlbumReordered(album_id, new_order))
        return changed

    def reorder_albums(self, album_orders: Iterable[tuple[int, int]]) -> bool:
        """Pin several albums at once, all or nothing.

        A batch naming an unknown album, or repeating an album or a
        position, is rejected without writing anything.
        """
        album_orders = list(album_orders)
        album_ids = [album_id for album_id, _ in album_orders]
        orders = [order for _, order in album_orders]
        if len(set(album_ids)) != len(album_ids) or len(set(orders)) != len(orders):
            logger.warning(f"Rejected reorder batch with repeated entries: {album_orders}")
            return False
        try:
            with self._reporting_errors(), self._db.transaction():
                for album_id, order in album_orders:
                    if not self._db.update_album(
                        album_id, order=order, is_auto_sorted=False
                    ):
                        raise _BatchRejected(album_id)
        except _BatchRejected as e:
            logger.warning(f"Rejected reorder batch: album {e.args[0]} not found")
            return False
        self._notify(AlbumsUpdated())
        return True

    def reset_to_auto_sort(self, album_id: int) -> bool:
        with self._reporting_errors():
            changed = self._db.update_album(album_id, is_auto_sorted=True, order=0)
        if changed:
            self._notify(AlbumsUpdated())
        return changed

    def reset_all_to_auto_sort(self) -> int:
        """Return every manual album to the auto regime. Returns how many moved."""
        with self._reporting_errors(), self._db.transaction():
            manual = [a for a in self._db.list_albums() if not a.is_auto_sorted]
            for album in manual:
                self._db.update_album(album.id, is_auto_sorted=True, order=0)
        self._notify(AlbumsUpdated())
        return len(manual)

    def delete_album(self, album_id: int) -> bool:
        """Delete an album together with its photos."""
        with self._reporting_errors():
            deleted = self._db.delete_album(album_id)
        if deleted:
            logger.info(f"Deleted album {album_id}")
            self._notify(AlbumsUpdated())
        return deleted

    def validate_and_fix_album_order(self) -> int:
        """Renumber manual albums to 0..n-1, keeping their relative order.

        Only albums whose position changes are written. Returns the number
        of albums rewritten; an event is published only if that is nonzero.
        """
        writes = 0
        with self._reporting_errors(), self._db.transaction():
            manual = sorted(
                (a for a in self._db.list_albums() if not a.is_auto_sorted),
                key=lambda a: (a.order, a.id),
            )
            for index, album in enumerate(manual):
                if album.order != index:
                    self._db.update_album(album.id, order=index)
                    writes += 1
        if writes:
            logger.info(f"Repaired order of {writes} manual album(s)")
            self._notify(AlbumsUpdated())
        return writes

    def list_for_display(self) -> list[Album]:
        """Manual albums by position, then auto albums newest first."""
        with self._reporting_errors():
            albums = self._db.list_albums()
        manual = sorted(
            (a for a in albums if not a.is_auto_sorted),
            key=lambda a: (a.order, a.id),
        )
        # Stable sort: albums sharing a key stay in id order
        auto = sorted(
            (a for a in albums if a.is_auto_sorted),
            key=lambda a: a.group_key,
            reverse=True,
        )
        return manual + auto

    def display_name(self, album: Album) -> str:
        return display_name(album)

    def get_album_stats(self) -> AlbumStats:
        with self._reporting_errors():
            albums = self._db.list_albums()
            total_photos = self._db.get_photo_count()
        auto = sum(1 for a in albums if a.is_auto_sorted)
        return AlbumStats(
            total_albums=len(albums),
            total_photos=total_photos,
            auto_sorted_albums=auto,
            manual_order_albums=len(albums) - auto,
            avg_photos_per_album=total_photos / (len(albums) or 1),
        )

    def _notify(self, event) -> None:
        self._db.after_commit(functools.partial(self._notifier.publish, event))

    @contextmanager
    def _reporting_errors(self) -> Generator[None, None, None]:
        try:
            yield
        except StoreError as e:
            if not e.reported:
                e.reported = True
                logger.error(f"Album store operation failed: {e}")
                self._notifier.publish(ErrorOccurred(e))
            raise
