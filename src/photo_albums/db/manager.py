"""Database manager for Photo Albums."""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Generator, Iterable

from sqlalchemy import create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction, sessionmaker

from photo_albums.db.models import Album, AutoSorted, ManualOrder, Photo
from photo_albums.db.schema import (
    CURRENT_SCHEMA_VERSION,
    AlbumRow,
    Base,
    PhotoRow,
    PreferenceRow,
    SchemaVersion,
    configure_sqlite_engine,
)

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

ALBUM_UPDATE_FIELDS = frozenset({"title", "custom_name", "order", "is_auto_sorted"})


class StoreError(RuntimeError):
    """The database failed or is unavailable. Not retried by callers."""

    # Set once an ErrorOccurred event has been published for this failure
    reported = False


def _store_errors(method):
    """Re-raise SQLAlchemy failures as StoreError, rolling back outside transactions."""

    @functools.wraps(method)
    def wrapper(self: DatabaseManager, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            if self._depth == 0 and self._session is not None:
                self._session.rollback()
            raise StoreError(f"{method.__name__} failed: {e}") from e

    return wrapper


class DatabaseManager:
    """Manages the SQLite database of albums, photos and preferences.

    Every read returns detached dataclass copies, so nothing handed out can
    drift from what is stored. Writes commit immediately unless they run
    inside ``transaction()``.
    """

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = Path(db_path) if db_path else None
        self._engine: Engine | None = None
        self._session: Session | None = None
        self._depth = 0
        self._pending: list[list[Callable[[], None]]] = []

    @property
    def db_path(self) -> Path | None:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def create_database(self, db_path: str | Path) -> None:
        """Create a new database (or ``":memory:"``) with the current schema."""
        if str(db_path) != MEMORY_DB:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connect(db_path)
        try:
            Base.metadata.create_all(self._engine)
            if self._session.get(SchemaVersion, CURRENT_SCHEMA_VERSION) is None:
                self._session.add(SchemaVersion(version=CURRENT_SCHEMA_VERSION))
            self._session.commit()
        except SQLAlchemyError as e:
            self.close()
            raise StoreError(f"Could not create database {db_path}: {e}") from e
        logger.info(f"Created database {db_path}")

    def open_database(self, db_path: str | Path) -> None:
        """Open an existing database and check its schema version."""
        if not Path(db_path).exists():
            raise FileNotFoundError(f"Database not found: {db_path}")
        self._connect(db_path)
        try:
            Base.metadata.create_all(self._engine)
            version = self._session.query(func.max(SchemaVersion.version)).scalar() or 0
        except SQLAlchemyError as e:
            self.close()
            raise StoreError(f"Could not open database {db_path}: {e}") from e
        if version > CURRENT_SCHEMA_VERSION:
            self.close()
            raise StoreError(
                f"Database schema v{version} is newer than supported v{CURRENT_SCHEMA_VERSION}"
            )
        logger.info(f"Opened database {db_path} (schema v{version})")

    def close(self) -> None:
        """Close the database connection."""
        if self._session is not None:
            self._session.close()
            self._session = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._depth = 0
        self._pending = []

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Run the enclosed writes as one atomic unit.

        Transactions nest: an inner block runs in a SAVEPOINT, so an
        exception leaving it undoes only its own writes. The outermost block
        commits. Callbacks queued with ``after_commit()`` run once that
        commit succeeds and are dropped with any block that rolls back.
        """
        session = self._ensure_open()
        savepoint = session.begin_nested() if self._depth else None
        self._depth += 1
        self._pending.append([])
        try:
            yield
            if savepoint is None:
                session.commit()
            else:
                savepoint.commit()
        except SQLAlchemyError as e:
            self._rollback(savepoint)
            raise StoreError(f"Transaction failed: {e}") from e
        except Exception:
            self._rollback(savepoint)
            raise
        finally:
            self._depth -= 1
            callbacks = self._pending.pop()
        if self._pending:
            self._pending[-1].extend(callbacks)
        else:
            for callback in callbacks:
                callback()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the enclosing transaction commits, or now outside one."""
        if self._pending:
            self._pending[-1].append(callback)
        else:
            callback()

    # --- Album CRUD ---

    @_store_errors
    def list_albums(self) -> list[Album]:
        session = self._ensure_open()
        rows = session.query(AlbumRow).order_by(AlbumRow.id).all()
        return [self._row_to_album(row) for row in rows]

    @_store_errors
    def get_album(self, album_id: int) -> Album | None:
        session = self._ensure_open()
        row = session.get(AlbumRow, album_id)
        return self._row_to_album(row) if row else None

    @_store_errors
    def get_album_by_group_key(self, group_key: str) -> Album | None:
        session = self._ensure_open()
        row = session.query(AlbumRow).filter_by(group_key=group_key).first()
        return self._row_to_album(row) if row else None

    @_store_errors
    def insert_album(
        self,
        group_key: str,
        title: str | None = None,
        custom_name: str | None = None,
        order: int = 0,
        is_auto_sorted: bool = True,
    ) -> int:
        """Insert an album. Returns the new album ID."""
        session = self._ensure_open()
        row = AlbumRow(
            group_key=group_key,
            title=title if title is not None else group_key,
            custom_name=custom_name,
            order=order,
            is_auto_sorted=is_auto_sorted,
        )
        session.add(row)
        session.flush()
        album_id = row.id
        self._commit()
        return album_id

    @_store_errors
    def update_album(self, album_id: int, **fields: Any) -> bool:
        """Update some of title, custom_name, order, is_auto_sorted.

        Returns False if the album does not exist.
        """
        unknown = set(fields) - ALBUM_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update album fields: {sorted(unknown)}")
        session = self._ensure_open()
        row = session.get(AlbumRow, album_id)
        if row is None:
            return False
        for name, value in fields.items():
            setattr(row, name, value)
        self._commit()
        return True

    @_store_errors
    def delete_album(self, album_id: int) -> bool:
        """Delete an album. Its photos are deleted with it."""
        session = self._ensure_open()
        row = session.get(AlbumRow, album_id)
        if row is None:
            return False
        session.delete(row)
        self._commit()
        return True

    @_store_errors
    def get_album_count(self) -> int:
        session = self._ensure_open()
        return session.query(func.count(AlbumRow.id)).scalar()

    # --- Photo CRUD ---

    @_store_errors
    def add_photo(
        self,
        album_id: int,
        file_path: str,
        filename: str,
        date_taken: datetime,
        file_size: int = 0,
        thumbnail: bytes | None = None,
    ) -> int:
        """Add a photo to an album. Returns the new photo ID."""
        session = self._ensure_open()
        row = PhotoRow(
            album_id=album_id,
            file_path=file_path,
            filename=filename,
            date_taken=date_taken,
            file_size=file_size,
            thumbnail=thumbnail,
        )
        session.add(row)
        session.flush()
        photo_id = row.id
        self._commit()
        return photo_id

    def add_photos(self, photos: Iterable[dict[str, Any]]) -> list[int]:
        """Add several photos atomically. Each item holds add_photo's arguments."""
        with self.transaction():
            return [self.add_photo(**photo) for photo in photos]

    @_store_errors
    def get_photo(self, photo_id: int) -> Photo | None:
        session = self._ensure_open()
        row = session.get(PhotoRow, photo_id)
        return self._row_to_photo(row) if row else None

    @_store_errors
    def get_photos_by_album(self, album_id: int) -> list[Photo]:
        """Get an album's photos, newest first."""
        session = self._ensure_open()
        rows = (
            session.query(PhotoRow)
            .filter_by(album_id=album_id)
            .order_by(PhotoRow.date_taken.desc(), PhotoRow.id.desc())
            .all()
        )
        return [self._row_to_photo(row) for row in rows]

    @_store_errors
    def get_all_photos(self) -> list[Photo]:
        session = self._ensure_open()
        rows = (
            session.query(PhotoRow)
            .order_by(PhotoRow.date_taken.desc(), PhotoRow.id.desc())
            .all()
        )
        return [self._row_to_photo(row) for row in rows]

    @_store_errors
    def update_photo_thumbnail(self, photo_id: int, thumbnail: bytes | None) -> bool:
        session = self._ensure_open()
        row = session.get(PhotoRow, photo_id)
        if row is None:
            return False
        row.thumbnail = thumbnail
        self._commit()
        return True

    @_store_errors
    def delete_photo(self, photo_id: int) -> bool:
        session = self._ensure_open()
        row = session.get(PhotoRow, photo_id)
        if row is None:
            return False
        session.delete(row)
        self._commit()
        return True

    @_store_errors
    def get_photo_count(self, album_id: int | None = None) -> int:
        session = self._ensure_open()
        query = session.query(func.count(PhotoRow.id))
        if album_id is not None:
            query = query.filter(PhotoRow.album_id == album_id)
        return query.scalar()

    # --- Preferences ---

    @_store_errors
    def get_preference(self, key: str, default: Any = None) -> Any:
        session = self._ensure_open()
        row = session.get(PreferenceRow, key)
        return row.value if row is not None else default

    @_store_errors
    def set_preference(self, key: str, value: Any) -> None:
        session = self._ensure_open()
        row = session.get(PreferenceRow, key)
        if row is None:
            session.add(PreferenceRow(key=key, value=value))
        else:
            row.value = value
        self._commit()

    @_store_errors
    def get_all_preferences(self) -> dict[str, Any]:
        session = self._ensure_open()
        return {row.key: row.value for row in session.query(PreferenceRow).all()}

    @_store_errors
    def delete_preference(self, key: str) -> bool:
        session = self._ensure_open()
        row = session.get(PreferenceRow, key)
        if row is None:
            return False
        session.delete(row)
        self._commit()
        return True

    # --- Private helpers ---

    def _connect(self, db_path: str | Path) -> None:
        self.close()
        if str(db_path) == MEMORY_DB:
            self._db_path = None
            url = "sqlite://"
        else:
            self._db_path = Path(db_path)
            url = f"sqlite:///{self._db_path}"
        self._engine = create_engine(url, echo=False)
        configure_sqlite_engine(self._engine)
        self._session = sessionmaker(bind=self._engine)()

    def _ensure_open(self) -> Session:
        if self._session is None:
            raise StoreError("Database is not open")
        return self._session

    def _rollback(self, savepoint: SessionTransaction | None) -> None:
        if savepoint is not None:
            savepoint.rollback()
        else:
            self._session.rollback()

    def _commit(self) -> None:
        if self._depth == 0:
            self._session.commit()

    @staticmethod
    def _row_to_album(row: AlbumRow) -> Album:
        if row.is_auto_sorted:
            regime = AutoSorted(row.group_key)
        else:
            regime = ManualOrder(row.order)
        return Album(
            id=row.id,
            group_key=row.group_key,
            title=row.title,
            regime=regime,
            custom_name=row.custom_name,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _row_to_photo(row: PhotoRow) -> Photo:
        return Photo(
            id=row.id,
            album_id=row.album_id,
            file_path=row.file_path,
            filename=row.filename,
            date_taken=row.date_taken,
            file_size=row.file_size or 0,
            thumbnail=row.thumbnail,
            date_added=row.date_added,
        )
