"""Unit tests for the error history stores."""

import json
import threading

import pytest

from aura_chat_sdk.reliability.error_service import ErrorService
from aura_chat_sdk.reliability.storage import InMemoryStore, JsonFileStore

pytestmark = pytest.mark.unit


class TestInMemoryStore:

    def test_get_set_remove(self):
        store = InMemoryStore()
        assert store.get("k") is None
        store.set("k", "v")
        assert store.get("k") == "v"
        store.remove("k")
        store.remove("k")
        assert store.get("k") is None


class TestJsonFileStore:

    def test_missing_file_reads_as_empty(self, tmp_path):
        assert JsonFileStore(tmp_path / "errors.json").get("k") is None

    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "errors.json"
        JsonFileStore(path).set("k", "v")

        assert JsonFileStore(path).get("k") == "v"
        assert json.loads(path.read_text()) == {"k": "v"}
        assert [p.name for p in path.parent.iterdir()] == ["errors.json"]

    def test_remove(self, tmp_path):
        store = JsonFileStore(tmp_path / "errors.json")
        store.set("a", "1")
        store.set("b", "2")
        store.remove("a")
        assert store.get("a") is None
        assert store.get("b") == "2"

    def test_non_object_file_rejected(self, tmp_path):
        path = tmp_path / "errors.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            JsonFileStore(path).get("k")

    def test_error_history_survives_restart(self, tmp_path):
        path = tmp_path / "errors.json"
        first = ErrorService(store=JsonFileStore(path))
        first.handle_error(first.create_network_error("offline"))

        second = ErrorService(store=JsonFileStore(path))
        records = second.get_stored_errors()
        assert [r.message for r in records] == ["offline"]
        assert records[0].user_message == "Network connection issue. Trying to reconnect..."

    def test_concurrent_writers_keep_every_key(self, tmp_path):
        store = JsonFileStore(tmp_path / "errors.json")

        def write(worker):
            for i in range(5):
                store.set(f"{worker}-{i}", "v")

        threads = [threading.Thread(target=write, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        data = json.loads((tmp_path / "errors.json").read_text())
        assert len(data) == 40
        assert not list(tmp_path.glob("*.tmp"))

    def test_concurrent_error_history_writes_not_lost(self, tmp_path):
        service = ErrorService(store=JsonFileStore(tmp_path / "errors.json"))

        def report(worker):
            for i in range(5):
                service.handle_error(service.create_network_error(f"worker {worker} failure {i}"))

        threads = [threading.Thread(target=report, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        messages = [r.message for r in service.get_stored_errors()]
        assert len(messages) == 40
        assert len(set(messages)) == 40
