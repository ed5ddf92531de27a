"""
Database schema for the photo albums application.
Defines the tables for albums, photos, and user preferences.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

CURRENT_SCHEMA_VERSION = 1

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlbumRow(Base):
    """One album per grouping key, auto-sorted unless the user pinned it."""
    __tablename__ = 'albums'
    # Ids of deleted rows are never handed out again
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True)
    group_key = Column(String(32), nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=False, default='')
    custom_name = Column(String(255))

    # Meaningful only when is_auto_sorted is False
    order = Column('order', Integer, nullable=False, default=0)
    is_auto_sorted = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    photos = relationship(
        "PhotoRow", back_populates="album",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def __repr__(self):
        return f"<Album(id={self.id}, group_key='{self.group_key}', auto={self.is_auto_sorted})>"


class PhotoRow(Base):
    __tablename__ = 'photos'
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True)
    album_id = Column(
        Integer, ForeignKey('albums.id', ondelete='CASCADE'),
        nullable=False, index=True,
    )
    file_path = Column(String(1024), nullable=False, unique=True)
    filename = Column(String(255), nullable=False)
    date_taken = Column(DateTime, nullable=False, index=True)
    file_size = Column(Integer, default=0)
    thumbnail = Column(LargeBinary)
    date_added = Column(DateTime, default=_utcnow)

    album = relationship("AlbumRow", back_populates="photos")

    def __repr__(self):
        return f"<Photo(id={self.id}, filename='{self.filename}', album_id={self.album_id})>"


class PreferenceRow(Base):
    __tablename__ = 'user_preferences'

    key = Column(String(255), primary_key=True)
    value = Column(JSON)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class SchemaVersion(Base):
    __tablename__ = 'schema_version'

    version = Column(Integer, primary_key=True)
    applied_date = Column(DateTime, default=_utcnow)


def configure_sqlite_engine(engine: Engine) -> None:
    """Enforce foreign keys and let SQLAlchemy own transaction boundaries.

    pysqlite's implicit BEGIN handling breaks SAVEPOINT, so the driver is
    put in autocommit mode and BEGIN is emitted explicitly.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")
