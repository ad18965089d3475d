import json

import numpy as np
import pytest

from gaitauth.exceptions import PersistenceError
from gaitauth.storage.enrollment_storage import (
    EnrollmentStorage,
    matrix_from_records,
    matrix_to_records,
)

from fakes import make_matrix


class TestEnrollmentStorage:
    @pytest.fixture
    def storage(self, tmp_path):
        return EnrollmentStorage(tmp_path / "enrollment")

    @pytest.mark.asyncio
    async def test_load_without_record_returns_none(self, storage):
        assert await storage.exists() is False
        assert await storage.load() is None

    @pytest.mark.asyncio
    async def test_save_then_load_preserves_values(self, storage):
        matrix = make_matrix(rows=5, start=1000)

        await storage.save(matrix)
        loaded = await storage.load()

        assert loaded is not None
        assert loaded.timestamps.tolist() == matrix.timestamps.tolist()
        np.testing.assert_array_equal(loaded.values, matrix.values)

    @pytest.mark.asyncio
    async def test_file_layout_is_timestamp_to_csv_row(self, storage):
        await storage.save(make_matrix(rows=2, start=7))

        payload = json.loads(storage.file_path.read_text(encoding="utf-8"))

        assert sorted(payload) == ["7", "8"]
        assert len(payload["7"].split(",")) == 6

    @pytest.mark.asyncio
    async def test_clear_then_load_is_empty(self, storage):
        await storage.save(make_matrix())
        await storage.clear()

        assert await storage.load() is None
        # clearing an empty slot is a no-op
        await storage.clear()

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_persistence_error(self, storage):
        storage.file_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError):
            await storage.load()

    @pytest.mark.asyncio
    async def test_non_object_payload_raises_persistence_error(self, storage):
        storage.file_path.write_text("[1, 2, 3]", encoding="utf-8")

        with pytest.raises(PersistenceError):
            await storage.load()


def test_records_are_sorted_by_timestamp():
    records = {"30": "1,1,1,1,1,1", "10": "0,0,0,0,0,0", "20": "2,2,2,2,2,2"}

    matrix = matrix_from_records(records)

    assert matrix.timestamps.tolist() == [10, 20, 30]
    assert matrix.values[1].tolist() == [2.0] * 6


def test_records_with_wrong_width_are_rejected():
    with pytest.raises(PersistenceError):
        matrix_from_records({"1": "1,2,3"})
    with pytest.raises(PersistenceError):
        matrix_from_records({"abc": "1,2,3,4,5,6"})


def test_records_round_trip_float32_exactly():
    matrix = make_matrix(rows=3)
    restored = matrix_from_records(matrix_to_records(matrix))
    np.testing.assert_array_equal(restored.values, matrix.values)
