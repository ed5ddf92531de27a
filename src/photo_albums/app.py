"""Application wiring: config, logging, database, notifier and services."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from photo_albums.albums.organizer import AlbumOrganizer
from photo_albums.config.config import ConfigManager, get_db_config_path
from photo_albums.db.manager import MEMORY_DB, DatabaseManager
from photo_albums.events.events import PreferenceChanged
from photo_albums.events.notifier import ChangeNotifier
from photo_albums.photos.catalog import PhotoCatalog

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

GROUP_BY_PREFERENCE = "albums.group_by"


def setup_logging(
    verbose: bool = False,
    level: str = "INFO",
    log_file: str | Path | None = None,
) -> None:
    """Setup logging configuration."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


@dataclass
class AlbumApp:
    """The wired-up services sharing one database and one notifier."""

    config: ConfigManager
    db: DatabaseManager
    notifier: ChangeNotifier
    organizer: AlbumOrganizer
    catalog: PhotoCatalog

    def set_preference(self, key: str, value: Any) -> None:
        self.db.set_preference(key, value)
        self.db.after_commit(
            functools.partial(self.notifier.publish, PreferenceChanged(key, value))
        )

    def close(self) -> None:
        self.db.close()


def create_app(
    db_path: str | Path | None = None,
    config_path: str | Path | None = None,
    verbose: bool = False,
) -> AlbumApp:
    """Open (or create) the database at ``db_path`` and wire the services.

    Without ``db_path`` the database is ``database.path`` from ``config_path``
    (or the default).

    Config layers are DEFAULT <- <db>.config.yaml <- ``config_path``; an
    in-memory database only uses DEFAULT <- ``config_path``. The album
    grouping preference stored in the database wins over the config.
    """
    if db_path is None:
        db_path = ConfigManager(config_path).database_path

    config = ConfigManager()
    if str(db_path) == MEMORY_DB:
        config.load_layered(cli_config_path=config_path)
    else:
        config.load_layered(
            db_config_path=get_db_config_path(db_path),
            cli_config_path=config_path,
        )

    setup_logging(verbose, config.get("logging.level", "INFO"), config.log_file)

    db = DatabaseManager()
    if str(db_path) != MEMORY_DB and Path(db_path).exists():
        db.open_database(db_path)
    else:
        db.create_database(db_path)

    notifier = ChangeNotifier()
    try:
        group_by = db.get_preference(GROUP_BY_PREFERENCE, config.group_by)
        organizer = AlbumOrganizer(db, notifier, group_by=group_by)
        catalog = PhotoCatalog(
            db, organizer, notifier,
            supported_formats=config.supported_formats,
        )
        if config.get("albums.validate_on_startup", True):
            organizer.validate_and_fix_album_order()
    except Exception:
        db.close()
        raise

    logger.info(f"Photo albums ready (database={db_path}, group_by={group_by})")
    return AlbumApp(
        config=config,
        db=db,
        notifier=notifier,
        organizer=organizer,
        catalog=catalog,
    )
