"""Tests for record validation, the record builder and dataset resolution."""

import pytest

from labelsync.datasets import DATASETS, get_dataset
from labelsync.errors import InvalidInputError, UnknownDatasetError
from labelsync.records import ANALYTICS_OPTIONS, build_record, record_key, validate_batch


class TestValidateBatch:
    def test_accepts_keyed_records(self):
        batch = [{"filename": "a.jpg"}, {"filename": "b.jpg", "labels": []}]

        assert validate_batch(batch) is batch

    def test_empty(self):
        with pytest.raises(InvalidInputError, match="empty"):
            validate_batch([])

    @pytest.mark.parametrize("data", [None, {"filename": "a"}, "a.jpg"])
    def test_not_a_list(self, data):
        with pytest.raises(InvalidInputError):
            validate_batch(data)

    def test_non_object_item(self):
        with pytest.raises(InvalidInputError, match="index 1"):
            validate_batch([{"filename": "a"}, 3])

    @pytest.mark.parametrize("record", [{}, {"filename": ""}, {"filename": None}, {"filename": 4}])
    def test_missing_key(self, record):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_batch([record])

        assert exc_info.value.context["index"] == 0


class TestBuildRecord:
    def test_shape(self):
        record = build_record(
            "cam1.jpg",
            ip="10.1.1.1",
            camera={"MANDAL": "Tenali", "LATITUDE": 16.24},
            analytics=["Loitering", "Pot Hole"],
            labels=[{"label": "person"}],
            image_width=1920,
            image_height=1080,
        )

        assert record_key(record) == "cam1.jpg"
        assert record["S.No"] == 0
        assert record["MANDAL"] == "Tenali"
        assert record["LATITUDE"] == 16.24
        assert record["LONGITUDE"] == ""
        assert record["CAMERA IP"] == "10.1.1.1"
        assert record["Loitering"] == "yes"
        assert record["Pot Hole"] == "yes"
        assert record["Accident"] == "no"
        assert record["labels"] == [{"label": "person"}]
        assert (record["imageWidth"], record["imageHeight"]) == (1920, 1080)

    def test_every_category_has_a_column(self):
        record = build_record("x.jpg")

        assert all(record[option] == "no" for option in ANALYTICS_OPTIONS)

    def test_camera_ip_prefers_camera_sheet(self):
        record = build_record("x.jpg", ip="1.1.1.1", camera={"CAMERA IP": "2.2.2.2"})

        assert record["CAMERA IP"] == "2.2.2.2"
        assert record["ip"] == "1.1.1.1"

    def test_unknown_category(self):
        with pytest.raises(InvalidInputError, match="Jaywalking"):
            build_record("x.jpg", analytics=["Jaywalking"])

    def test_built_record_passes_validation(self):
        validate_batch([build_record("x.jpg")])


class TestDatasets:
    def test_known(self):
        assert get_dataset("ptz").path == "analytics-data-ptz/image_analytics_data.json"
        assert get_dataset("new_guntur").path == "analytics-data-new-guntur/image_analytics_data.json"

    @pytest.mark.parametrize("dataset_id", [None, ""])
    def test_default(self, dataset_id):
        assert get_dataset(dataset_id).path == "analytics-data/image_analytics_data.json"

    def test_unknown(self):
        with pytest.raises(UnknownDatasetError):
            get_dataset("guntur")

    def test_paths_are_distinct(self):
        paths = [d.path for d in DATASETS.values()]
        assert len(paths) == len(set(paths))
