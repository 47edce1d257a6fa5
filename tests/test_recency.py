import json

import pytest

from civic_locator.models import Candidate, RecencyEntry, SourceKind
from civic_locator.recency import RecencyStore
from civic_locator.storage import JsonFileKeyValueStore, MemoryKeyValueStore

KEY = "civic_locator.recent_locations"


def entry(name, lat=12.97, lng=77.59, external_id=None):
    return RecencyEntry(name, lat, lng, external_id, "2026-01-01T00:00:00+00:00")


class BrokenStore:
    def get(self, key):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("storage full")

    def remove(self, key):
        raise OSError("storage unavailable")


def test_record_moves_duplicate_name_to_front_without_duplicating():
    recency = RecencyStore(MemoryKeyValueStore(), clock=lambda: "t")
    mg_road = Candidate("MG Road", 12.9752, 77.6065, SourceKind.GEOCODED, "98765")

    recency.record_candidate(mg_road)
    recency.record(entry("Koramangala"))
    recency.record_candidate(mg_road)

    entries = recency.list()
    assert [e.name for e in entries] == ["MG Road", "Koramangala"]
    assert entries[0].coordinates == (12.9752, 77.6065)
    assert entries[0].external_id == "98765"


def test_sixth_distinct_entry_drops_the_oldest():
    recency = RecencyStore(MemoryKeyValueStore())
    for i in range(6):
        recency.record(entry(f"Place {i}"))

    names = [e.name for e in recency.list()]
    assert names == ["Place 5", "Place 4", "Place 3", "Place 2", "Place 1"]


def test_persisted_shape_is_json_array():
    store = MemoryKeyValueStore()
    RecencyStore(store).record(entry("Lalbagh", 12.9507, 77.5848, "7"))

    data = json.loads(store.get(KEY))
    assert data == [
        {
            "name": "Lalbagh",
            "lat": 12.9507,
            "lng": 77.5848,
            "externalId": "7",
            "timestamp": "2026-01-01T00:00:00+00:00",
        }
    ]


@pytest.mark.parametrize(
    "raw",
    [None, "", "not json", '{"name": "x"}', "42", '[{"name": 5}]', '[{"name": "x", "lat": "nan", "lng": 1}]'],
)
def test_missing_or_malformed_data_reads_as_empty(raw):
    store = MemoryKeyValueStore({KEY: raw} if raw is not None else {})

    assert RecencyStore(store).list() == []


def test_malformed_items_are_skipped_and_list_is_repaired_on_write():
    store = MemoryKeyValueStore({KEY: json.dumps([{"bogus": 1}, entry("MG Road").to_dict()])})
    recency = RecencyStore(store)

    assert [e.name for e in recency.list()] == ["MG Road"]
    recency.record(entry("Indiranagar"))
    assert [item["name"] for item in json.loads(store.get(KEY))] == ["Indiranagar", "MG Road"]


def test_storage_failures_never_raise():
    recency = RecencyStore(BrokenStore())

    assert recency.list() == []
    recency.record(entry("MG Road"))
    recency.clear()


def test_clear_empties_the_list():
    recency = RecencyStore(MemoryKeyValueStore())
    recency.record(entry("MG Road"))
    recency.clear()

    assert recency.list() == []


def test_json_file_store_round_trip_and_atomic_write(tmp_path):
    path = tmp_path / "state.json"
    recency = RecencyStore(JsonFileKeyValueStore(str(path)))

    recency.record(entry("MG Road"))
    reopened = RecencyStore(JsonFileKeyValueStore(str(path)))

    assert [e.name for e in reopened.list()] == ["MG Road"]
    leftovers = [p for p in tmp_path.iterdir() if p.name != "state.json"]
    assert not leftovers


def test_json_file_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{corrupt", encoding="utf-8")
    store = JsonFileKeyValueStore(str(path))

    assert RecencyStore(store).list() == []
    store.set("other", "value")
    assert store.get("other") == "value"


def test_duplicate_names_in_stored_list_read_once_newest_first():
    stored = [
        entry("MG Road", 12.9752, 77.6065, "new").to_dict(),
        entry("Lalbagh").to_dict(),
        entry("MG Road", 12.0, 77.0, "old").to_dict(),
    ]
    recency = RecencyStore(MemoryKeyValueStore({KEY: json.dumps(stored)}))

    entries = recency.list()

    assert [e.name for e in entries] == ["MG Road", "Lalbagh"]
    assert entries[0].external_id == "new"
