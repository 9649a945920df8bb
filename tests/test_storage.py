"""
Test suite for the storage backends

Basic CRUD, unique inserts and atomic blocks on both backends.
"""

import pytest
import tempfile
from decimal import Decimal
from datetime import datetime, date, timezone
from pathlib import Path

from lending_core.storage import (
    DuplicateRecordError, InMemoryStorage, SQLiteStorage, create_storage, to_storable
)


test_data = {
    "id": "record_1",
    "amount": "100.50",
    "name": "Test Record"
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        backend = InMemoryStorage()
        yield backend
        backend.close()
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SQLiteStorage(Path(temp_dir) / "test.db")
            yield backend
            backend.close()


class TestStorageInterface:
    """Test basic operations on every backend"""

    def test_basic_operations(self, storage):
        storage.save("test_table", "record_1", test_data)
        assert storage.load("test_table", "record_1") == test_data
        assert storage.exists("test_table", "record_1")
        assert storage.count("test_table") == 1

        storage.save("test_table", "record_1", {**test_data, "name": "Updated"})
        assert storage.load("test_table", "record_1")["name"] == "Updated"
        assert storage.count("test_table") == 1

        assert storage.delete("test_table", "record_1")
        assert not storage.delete("test_table", "record_1")
        assert storage.load("test_table", "record_1") is None

    def test_find_and_load_all(self, storage):
        storage.save("loans", "a", {"tenant_id": "T1", "status": "ONGOING"})
        storage.save("loans", "b", {"tenant_id": "T1", "status": "COMPLETED"})
        storage.save("loans", "c", {"tenant_id": "T2", "status": "ONGOING"})

        assert len(storage.load_all("loans")) == 3
        assert len(storage.find("loans", {"tenant_id": "T1"})) == 2
        assert len(storage.find("loans", {"tenant_id": "T1", "status": "ONGOING"})) == 1
        assert storage.find("loans", {"missing_key": "x"}) == []

    def test_loaded_records_are_copies(self, storage):
        storage.save("t", "1", {"items": [1, 2]})
        loaded = storage.load("t", "1")
        loaded["items"].append(3)
        assert storage.load("t", "1") == {"items": [1, 2]}

    def test_insert_refuses_existing_key(self, storage):
        storage.insert("keys", "loan|2024-01-01", {"installment_id": "i1"})
        with pytest.raises(DuplicateRecordError) as exc_info:
            storage.insert("keys", "loan|2024-01-01", {"installment_id": "i2"})
        assert exc_info.value.table == "keys"
        assert storage.load("keys", "loan|2024-01-01") == {"installment_id": "i1"}

    def test_clear_table(self, storage):
        storage.save("t", "1", {})
        storage.clear_table("t")
        assert storage.count("t") == 0


class TestTransactionSupport:
    """Test atomic blocks"""

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("t", "1", {"v": 1})
            storage.save("t", "2", {"v": 2})
        assert storage.count("t") == 2

    def test_atomic_rolls_back_on_error(self, storage):
        storage.save("t", "keep", {"v": 0})
        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("t", "1", {"v": 1})
                storage.save("t", "keep", {"v": 99})
                raise ValueError("Simulated error")

        assert storage.load("t", "1") is None
        assert storage.load("t", "keep") == {"v": 0}

    def test_nested_atomic_rolls_back_everything(self, storage):
        with pytest.raises(DuplicateRecordError):
            with storage.atomic():
                storage.save("t", "outer", {})
                with storage.atomic():
                    storage.insert("u", "k", {})
                    storage.insert("u", "k", {})

        assert storage.load("t", "outer") is None
        assert storage.load("u", "k") is None


class TestStorageHelpers:

    def test_to_storable(self):
        now = datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
        result = to_storable({
            "amount": Decimal('1.50'),
            "when": now,
            "day": date(2024, 1, 2),
            "ids": {3, 1},
            "nested": [Decimal('2')]
        })
        assert result == {
            "amount": "1.50",
            "when": now.isoformat(),
            "day": "2024-01-02",
            "ids": [1, 3],
            "nested": ["2"]
        }

    def test_create_storage(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)
        sqlite_storage = create_storage("sqlite:///:memory:")
        assert isinstance(sqlite_storage, SQLiteStorage)
        sqlite_storage.close()
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/lending")
