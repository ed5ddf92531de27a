"""Tests for DatabaseManager."""

from datetime import datetime

import pytest

from photo_albums.db.manager import DatabaseManager, StoreError
from photo_albums.db.models import AutoSorted, ManualOrder


@pytest.fixture
def db(tmp_path):
    """Create a fresh database for each test."""
    db_path = tmp_path / "test.db"
    manager = DatabaseManager()
    manager.create_database(db_path)
    yield manager
    manager.close()


def _add_photo(db, album_id, name, when=datetime(2024, 11, 15, 12, 0), size=100):
    return db.add_photo(
        album_id=album_id,
        file_path=f"/photos/{name}",
        filename=name,
        date_taken=when,
        file_size=size,
    )


class TestDatabaseLifecycle:
    def test_create_database(self, db):
        assert db.is_open
        assert db.db_path.exists()

    def test_open_existing(self, tmp_path):
        db_path = tmp_path / "photos.db"
        first = DatabaseManager()
        first.create_database(db_path)
        first.insert_album("2024-W46")
        first.close()

        second = DatabaseManager()
        second.open_database(db_path)
        assert [a.group_key for a in second.list_albums()] == ["2024-W46"]
        second.close()

    def test_open_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DatabaseManager().open_database(tmp_path / "missing.db")

    def test_memory_database(self):
        db = DatabaseManager()
        db.create_database(":memory:")
        assert db.is_open
        assert db.db_path is None
        db.insert_album("2024-W01")
        assert db.get_album_count() == 1
        db.close()

    def test_closed_database_raises(self, db):
        db.close()
        assert not db.is_open
        with pytest.raises(StoreError):
            db.list_albums()


class TestAlbumCrud:
    def test_insert_and_get(self, db):
        album_id = db.insert_album("2024-W46")
        album = db.get_album(album_id)
        assert album.id == album_id
        assert album.group_key == "2024-W46"
        assert album.title == "2024-W46"
        assert album.custom_name is None
        assert album.regime == AutoSorted("2024-W46")
        assert album.is_auto_sorted
        assert album.order is None
        assert album.created_at is not None

    def test_get_missing(self, db):
        assert db.get_album(999) is None

    def test_get_by_group_key(self, db):
        album_id = db.insert_album("2024-W46")
        assert db.get_album_by_group_key("2024-W46").id == album_id
        assert db.get_album_by_group_key("2024-W47") is None

    def test_group_key_is_unique(self, db):
        db.insert_album("2024-W46")
        with pytest.raises(StoreError):
            db.insert_album("2024-W46")
        # The session is still usable after the failure
        assert db.get_album_count() == 1

    def test_update_to_manual(self, db):
        album_id = db.insert_album("2024-W46")
        assert db.update_album(album_id, order=3, is_auto_sorted=False)
        album = db.get_album(album_id)
        assert album.regime == ManualOrder(3)
        assert not album.is_auto_sorted
        assert album.order == 3

    def test_update_custom_name(self, db):
        album_id = db.insert_album("2024-W46")
        db.update_album(album_id, custom_name="Lake trip")
        assert db.get_album(album_id).custom_name == "Lake trip"
        db.update_album(album_id, custom_name=None)
        assert db.get_album(album_id).custom_name is None

    def test_update_missing(self, db):
        assert db.update_album(999, title="x") is False

    def test_update_unknown_field(self, db):
        album_id = db.insert_album("2024-W46")
        with pytest.raises(ValueError):
            db.update_album(album_id, group_key="2024-W47")

    def test_delete(self, db):
        album_id = db.insert_album("2024-W46")
        assert db.delete_album(album_id)
        assert db.get_album(album_id) is None
        assert db.delete_album(album_id) is False

    def test_deleted_ids_are_not_reused(self, db):
        album_id = db.insert_album("2024-W46")
        photo_id = _add_photo(db, album_id, "a.jpg")
        db.delete_album(album_id)
        new_album = db.insert_album("2024-W47")
        new_photo = _add_photo(db, new_album, "a.jpg")
        assert new_album != album_id
        assert new_photo != photo_id
        assert db.update_album(album_id, custom_name="Stale") is False

    def test_delete_cascades_to_photos(self, db):
        album_id = db.insert_album("2024-W46")
        other_id = db.insert_album("2024-W47")
        photo_id = _add_photo(db, album_id, "a.jpg")
        other_photo = _add_photo(db, other_id, "b.jpg")
        db.delete_album(album_id)
        assert db.get_photo(photo_id) is None
        assert db.get_photo(other_photo) is not None
        assert db.get_photo_count() == 1


class TestTransaction:
    def test_commit(self, db):
        a = db.insert_album("2024-W01")
        b = db.insert_album("2024-W02")
        with db.transaction():
            db.update_album(a, order=0, is_auto_sorted=False)
            db.update_album(b, order=1, is_auto_sorted=False)
        assert db.get_album(a).order == 0
        assert db.get_album(b).order == 1

    def test_rollback_on_exception(self, db):
        a = db.insert_album("2024-W01")
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.update_album(a, order=5, is_auto_sorted=False)
                db.insert_album("2024-W02")
                raise RuntimeError("boom")
        assert db.get_album(a).is_auto_sorted
        assert db.get_album_by_group_key("2024-W02") is None

    def test_nested_rolls_back_everything(self, db):
        with pytest.raises(StoreError):
            with db.transaction():
                db.insert_album("2024-W01")
                with db.transaction():
                    db.insert_album("2024-W02")
                db.insert_album("2024-W01")
        assert db.get_album_count() == 0

    def test_usable_after_rollback(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.insert_album("2024-W01")
                raise RuntimeError("boom")
        db.insert_album("2024-W01")
        assert db.get_album_count() == 1

    def test_failed_inner_block_rolls_back_only_its_writes(self, db):
        a = db.insert_album("2024-W01")
        with db.transaction():
            db.insert_album("2024-W02")
            with pytest.raises(RuntimeError):
                with db.transaction():
                    db.update_album(a, order=3, is_auto_sorted=False)
                    db.insert_album("2024-W03")
                    raise RuntimeError("boom")
            db.insert_album("2024-W04")
        assert db.get_album(a).is_auto_sorted
        assert db.get_album_by_group_key("2024-W03") is None
        assert db.get_album_by_group_key("2024-W02") is not None
        assert db.get_album_by_group_key("2024-W04") is not None

    def test_failed_inner_insert_keeps_outer_writes(self, db):
        with db.transaction():
            db.insert_album("2024-W01")
            with pytest.raises(StoreError):
                with db.transaction():
                    db.insert_album("2024-W01")
            db.insert_album("2024-W02")
        assert db.get_album_count() == 2


class TestAfterCommit:
    def test_runs_immediately_outside_transaction(self, db):
        calls = []
        db.after_commit(lambda: calls.append("done"))
        assert calls == ["done"]

    def test_waits_for_outermost_commit(self, db):
        calls = []
        with db.transaction():
            db.after_commit(lambda: calls.append("outer"))
            with db.transaction():
                db.after_commit(lambda: calls.append("inner"))
            assert calls == []
        assert calls == ["outer", "inner"]

    def test_dropped_on_rollback(self, db):
        calls = []
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.after_commit(lambda: calls.append("outer"))
                raise RuntimeError("boom")
        assert calls == []

    def test_dropped_with_failed_inner_block(self, db):
        calls = []
        with db.transaction():
            with pytest.raises(RuntimeError):
                with db.transaction():
                    db.after_commit(lambda: calls.append("inner"))
                    raise RuntimeError("boom")
            db.after_commit(lambda: calls.append("outer"))
        assert calls == ["outer"]


class TestPhotoCrud:
    def test_add_and_get(self, db):
        album_id = db.insert_album("2024-W46")
        photo_id = _add_photo(db, album_id, "a.jpg", size=2048)
        photo = db.get_photo(photo_id)
        assert photo.album_id == album_id
        assert photo.file_path == "/photos/a.jpg"
        assert photo.filename == "a.jpg"
        assert photo.date_taken == datetime(2024, 11, 15, 12, 0)
        assert photo.file_size == 2048
        assert photo.thumbnail is None

    def test_photos_newest_first(self, db):
        album_id = db.insert_album("2024-W46")
        _add_photo(db, album_id, "old.jpg", when=datetime(2024, 11, 11))
        _add_photo(db, album_id, "new.jpg", when=datetime(2024, 11, 16))
        names = [p.filename for p in db.get_photos_by_album(album_id)]
        assert names == ["new.jpg", "old.jpg"]

    def test_add_photos_is_atomic(self, db):
        album_id = db.insert_album("2024-W46")
        rows = [
            dict(album_id=album_id, file_path="/p/a.jpg", filename="a.jpg",
                 date_taken=datetime(2024, 11, 12)),
            dict(album_id=album_id, file_path="/p/a.jpg", filename="a.jpg",
                 date_taken=datetime(2024, 11, 13)),
        ]
        with pytest.raises(StoreError):
            db.add_photos(rows)
        assert db.get_photo_count() == 0

    def test_thumbnail(self, db):
        album_id = db.insert_album("2024-W46")
        photo_id = _add_photo(db, album_id, "a.jpg")
        assert db.update_photo_thumbnail(photo_id, b"\xff\xd8thumb")
        assert db.get_photo(photo_id).thumbnail == b"\xff\xd8thumb"
        assert db.update_photo_thumbnail(999, b"x") is False

    def test_delete_photo(self, db):
        album_id = db.insert_album("2024-W46")
        photo_id = _add_photo(db, album_id, "a.jpg")
        assert db.delete_photo(photo_id)
        assert db.delete_photo(photo_id) is False
        assert db.get_album(album_id) is not None

    def test_photo_counts(self, db):
        a = db.insert_album("2024-W46")
        b = db.insert_album("2024-W47")
        _add_photo(db, a, "1.jpg")
        _add_photo(db, a, "2.jpg")
        _add_photo(db, b, "3.jpg")
        assert db.get_photo_count() == 3
        assert db.get_photo_count(a) == 2
        assert len(db.get_all_photos()) == 3


class TestPreferences:
    def test_default(self, db):
        assert db.get_preference("missing") is None
        assert db.get_preference("missing", "week") == "week"

    def test_set_and_get(self, db):
        db.set_preference("sort_mode", {"field": "date", "asc": False})
        assert db.get_preference("sort_mode") == {"field": "date", "asc": False}
        db.set_preference("sort_mode", "manual")
        assert db.get_preference("sort_mode") == "manual"

    def test_all_and_delete(self, db):
        db.set_preference("a", 1)
        db.set_preference("b", [1, 2])
        assert db.get_all_preferences() == {"a": 1, "b": [1, 2]}
        assert db.delete_preference("a")
        assert db.delete_preference("a") is False
        assert db.get_all_preferences() == {"b": [1, 2]}
