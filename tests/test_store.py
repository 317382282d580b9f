import json

import pytest

from foundit_ai.common.config import Settings
from foundit_ai.common.schemas import Handover, Match, MatchStatus, ReportType
from foundit_ai.store import MemoryStore, Store, build_store
from tests.conftest import _make_report


class TestMemoryStore:

    def test_get_put_all(self, store):
        report = _make_report(store)
        assert store.get("reports", report.id) == report
        assert store.all("reports") == [report]
        assert store.get("reports", "missing") is None

    def test_unknown_collection(self, store):
        with pytest.raises(KeyError):
            store.get("widgets", "x")

    def test_update_touches_only_the_keyed_entity(self, store):
        first = _make_report(store, item_name="Keys")
        second = _make_report(store, item_name="Wallet")

        store.update("reports", first.id,
                     lambda r: r.model_copy(update={"description": "house keys"}))

        assert store.get("reports", first.id).description == "house keys"
        assert store.get("reports", second.id) == second

    def test_update_returning_none_keeps_value(self, store):
        report = _make_report(store)
        assert store.update("reports", report.id, lambda r: None) == report

    def test_update_missing_key(self, store):
        assert store.update("reports", "missing", lambda r: r) is None

    def test_insert_unless_conflict(self, store):
        first = Match(lost_report_id="l1", found_report_id="f1", confidence=70)
        dup = Match(lost_report_id="f1", found_report_id="l1", confidence=90)

        def conflict(m):
            return m.status != MatchStatus.REJECTED and m.links("l1", "f1")

        assert store.insert_unless("matches", first.id, first, conflict) is True
        assert store.insert_unless("matches", dup.id, dup, conflict) is False
        assert store.all("matches") == [first]

    def test_insert_unless_existing_key(self, store):
        handover = Handover(match_id="m1", code="ABC123")
        assert store.insert_unless("handovers", "m1", handover, lambda _: False) is True
        again = Handover(match_id="m1", code="XYZ789")
        assert store.insert_unless("handovers", "m1", again, lambda _: False) is False
        assert store.get("handovers", "m1").code == "ABC123"


class TestSnapshots:

    def test_reload_from_snapshot_dir(self, tmp_path):
        first = MemoryStore(snapshot_dir=str(tmp_path))
        report = _make_report(first, type=ReportType.FOUND, verification_answer="red",
                              verification_question="Strap color?")
        first.put("handovers", "m1", Handover(match_id="m1", code="ABC123"))

        second = MemoryStore(snapshot_dir=str(tmp_path))

        assert second.get("reports", report.id) == report
        assert second.get("handovers", "m1").code == "ABC123"

    def test_mutation_rewrites_collection_file(self, tmp_path):
        store = MemoryStore(snapshot_dir=str(tmp_path))
        report = _make_report(store)
        store.update("reports", report.id, lambda r: r.model_copy(update={"location": "Gym"}))

        rows = json.loads((tmp_path / "reports.json").read_text())
        assert rows[0]["location"] == "Gym"

    def test_corrupt_snapshot_starts_empty(self, tmp_path):
        (tmp_path / "matches.json").write_text("{not json")
        store = MemoryStore(snapshot_dir=str(tmp_path))
        assert store.all("matches") == []


class TestBuildStore:

    def test_memory_backend(self, tmp_path):
        store = build_store(Settings(store_backend="memory", snapshot_dir=str(tmp_path)))
        assert isinstance(store, MemoryStore)


class TestStoreInterface:

    def test_incomplete_backend_cannot_be_built(self):
        """A back-end missing the atomic operations fails at construction."""
        class ReadOnlyStore(Store):
            def get(self, collection, key):
                return None

            def all(self, collection):
                return []

            def put(self, collection, key, value):
                pass

        with pytest.raises(TypeError):
            ReadOnlyStore()
