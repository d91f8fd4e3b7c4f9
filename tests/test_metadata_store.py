"""Tests for the JSON and SQLite metadata stores."""

import json
import threading
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from photo_backup.config import ServerConfig
from photo_backup.errors import DuplicateError, StorageError
from photo_backup.models import ExifData, PhotoRecord
from photo_backup.server.metadata_store import (
    JsonMetadataStore,
    SqliteMetadataStore,
    create_metadata_store,
)


def make_record(checksum: str, **overrides) -> PhotoRecord:
    photo_id = overrides.pop("id", uuid4())
    fields = {
        "id": photo_id,
        "original_filename": "IMG_0001.jpg",
        "mime_type": "image/jpeg",
        "size": 1024,
        "width": 64,
        "height": 48,
        "created_at": datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc),
        "checksum": checksum,
        "storage_path": f"2024/03/{photo_id}.jpg",
        "thumbnail_path": f"{photo_id}.jpg",
    }
    fields.update(overrides)
    return PhotoRecord(**fields)


def _open(backend: str, tmp_path):
    if backend == "json":
        return JsonMetadataStore(tmp_path / "metadata.json")
    return SqliteMetadataStore(tmp_path / "metadata.db")


@pytest.fixture(params=["json", "sqlite"])
def backend(request):
    return request.param


@pytest.fixture
def store(backend, tmp_path):
    s = _open(backend, tmp_path)
    yield s
    s.close()


class TestMetadataStoreContract:
    """Behaviour both backends must share."""

    def test_empty_store(self, store):
        assert store.load_all() == []
        assert store.get(uuid4()) is None
        assert store.find_by_checksum("0" * 64) is None

    def test_save_and_get(self, store):
        record = make_record("a" * 64)
        store.save(record)

        assert store.get(record.id) == record
        assert store.find_by_checksum("a" * 64) == record

    def test_load_all_keeps_insertion_order(self, store):
        records = [make_record(c * 64) for c in "abc"]
        for r in records:
            store.save(r)

        assert [r.id for r in store.load_all()] == [r.id for r in records]

    def test_exif_and_taken_at_round_trip(self, store):
        taken = datetime(2023, 7, 1, 8, 15, tzinfo=timezone.utc)
        record = make_record(
            "e" * 64,
            taken_at=taken,
            exif=ExifData(
                camera_make="Canon",
                iso=200,
                shutter_speed="1/125",
                latitude=-33.8688,
                date_time_original=taken,
            ),
        )
        store.save(record)

        loaded = store.get(record.id)
        assert loaded.taken_at == taken
        assert loaded.exif.camera_make == "Canon"
        assert loaded.exif.latitude == -33.8688
        assert loaded.exif.date_time_original == taken

    def test_duplicate_checksum_rejected(self, store):
        first = make_record("d" * 64)
        store.save(first)

        with pytest.raises(DuplicateError) as excinfo:
            store.save(make_record("d" * 64))
        assert excinfo.value.existing_id == first.id
        assert len(store.load_all()) == 1

    def test_resave_same_id_replaces(self, store):
        record = make_record("f" * 64)
        store.save(record)
        store.save(record.model_copy(update={"original_filename": "renamed.jpg"}))

        assert len(store.load_all()) == 1
        assert store.get(record.id).original_filename == "renamed.jpg"

    def test_delete(self, store):
        keep = make_record("1" * 64)
        gone = make_record("2" * 64)
        store.save(keep)
        store.save(gone)

        store.delete(gone.id)

        assert store.get(gone.id) is None
        assert [r.id for r in store.load_all()] == [keep.id]
        # The checksum is free again once its record is gone
        store.save(make_record("2" * 64))

    def test_delete_missing_is_noop(self, store):
        store.delete(uuid4())
        assert store.load_all() == []

    def test_survives_reopen(self, backend, tmp_path):
        first = _open(backend, tmp_path)
        record = make_record("9" * 64)
        first.save(record)
        first.close()

        reopened = _open(backend, tmp_path)
        try:
            assert reopened.get(record.id) == record
        finally:
            reopened.close()

    def test_concurrent_identical_saves_yield_one_record(self, store):
        """Racing writers with the same checksum: one wins, the rest 409."""
        results: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def _save():
            barrier.wait()
            try:
                store.save(make_record("7" * 64))
                outcome = "saved"
            except DuplicateError:
                outcome = "duplicate"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=_save) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("saved") == 1
        assert results.count("duplicate") == 7
        assert len(store.load_all()) == 1


class TestJsonMetadataStore:
    def test_file_is_camel_case_list(self, tmp_path):
        path = tmp_path / "metadata.json"
        store = JsonMetadataStore(path)
        record = make_record("a" * 64)
        store.save(record)

        raw = json.loads(path.read_text())
        assert isinstance(raw, list)
        assert raw[0]["originalFilename"] == "IMG_0001.jpg"
        assert raw[0]["storagePath"] == record.storage_path

    def test_no_temp_files_left(self, tmp_path):
        store = JsonMetadataStore(tmp_path / "metadata.json")
        store.save(make_record("a" * 64))
        store.delete(store.load_all()[0].id)

        assert [p.name for p in tmp_path.iterdir()] == ["metadata.json"]

    def test_failed_write_leaves_cache_unchanged(self, tmp_path, monkeypatch):
        store = JsonMetadataStore(tmp_path / "metadata.json")
        kept = make_record("a" * 64)
        store.save(kept)

        def _fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("photo_backup.server.metadata_store.os.replace", _fail)
        with pytest.raises(StorageError, match="disk full"):
            store.save(make_record("b" * 64))

        assert [r.id for r in store.load_all()] == [kept.id]

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text("{not json")

        with pytest.raises(StorageError, match="Cannot read metadata file"):
            JsonMetadataStore(path).load_all()


class TestCreateMetadataStore:
    def test_json_backend(self, tmp_path):
        config = ServerConfig(storage_path=str(tmp_path), metadata_backend="json")
        assert isinstance(create_metadata_store(config), JsonMetadataStore)

    def test_sqlite_backend(self, tmp_path):
        config = ServerConfig(storage_path=str(tmp_path), metadata_backend="sqlite")
        store = create_metadata_store(config)
        try:
            assert isinstance(store, SqliteMetadataStore)
            assert config.database_file.exists()
        finally:
            store.close()

    def test_unknown_backend(self, tmp_path):
        config = ServerConfig(storage_path=str(tmp_path), metadata_backend="csv")
        with pytest.raises(ValueError, match="Unknown metadata backend"):
            create_metadata_store(config)
