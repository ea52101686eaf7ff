"""Unit tests for the session stores (in-memory and SQLite)."""

import pytest

from formative.config import LLMSettings, LLMProvider
from formative.executor.session_store import (
    InMemorySessionStore,
    SqliteSessionStore,
    create_session_store,
)
from formative.stages import StageEngine, StageKind


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionStore()
    return SqliteSessionStore(tmp_path / "sessions.db")


@pytest.fixture
def engine():
    return StageEngine()


class TestSessionStore:

    def test_unknown_session_loads_none(self, store):
        assert store.load("missing") is None
        assert store.load_outputs("missing") == {}

    def test_state_round_trip(self, store, engine):
        state = engine.mark_completed(engine.initialize(), StageKind.REQUIREMENT_COLLECTION)
        store.save("s1", state)
        assert store.load("s1") == state

    def test_save_overwrites(self, store, engine):
        store.save("s1", engine.initialize())
        advanced = engine.mark_completed(engine.initialize(), 1)
        store.save("s1", advanced)
        assert store.load("s1") == advanced

    def test_outputs_round_trip(self, store, engine):
        store.save("s1", engine.initialize())
        data = {"risks": [], "approaches": [{"name": "Lean", "note": "简单"}]}
        store.save_output("s1", StageKind.RISK_ANALYSIS, data)

        assert store.load_outputs("s1") == {StageKind.RISK_ANALYSIS: data}

    def test_outputs_are_copies(self, store, engine):
        store.save("s1", engine.initialize())
        store.save_output("s1", StageKind.RISK_ANALYSIS, {"risks": []})

        loaded = store.load_outputs("s1")
        loaded[StageKind.RISK_ANALYSIS]["risks"].append("mutated")

        assert store.load_outputs("s1")[StageKind.RISK_ANALYSIS] == {"risks": []}

    def test_delete(self, store, engine):
        store.save("s1", engine.initialize())
        store.save_output("s1", StageKind.REQUIREMENT_COLLECTION, {"extracted": {}})
        store.delete("s1")

        assert store.load("s1") is None
        assert store.load_outputs("s1") == {}

    def test_list_sessions(self, store, engine):
        store.save("a", engine.initialize())
        store.save("b", engine.initialize())
        assert sorted(store.list_sessions()) == ["a", "b"]


def test_sqlite_persists_across_instances(tmp_path):
    engine = StageEngine()
    path = tmp_path / "nested" / "sessions.db"
    state = engine.mark_completed(engine.initialize(), 1)

    SqliteSessionStore(path).save("s1", state)

    assert SqliteSessionStore(path).load("s1") == state


class TestCreateSessionStore:

    def test_in_memory_by_default(self):
        assert isinstance(create_session_store(), InMemorySessionStore)
        settings = LLMSettings(provider=LLMProvider.OLLAMA)
        assert isinstance(create_session_store(settings), InMemorySessionStore)

    def test_sqlite_when_path_configured(self, tmp_path):
        settings = LLMSettings(provider=LLMProvider.OLLAMA, database_path=str(tmp_path / "f.db"))
        assert isinstance(create_session_store(settings), SqliteSessionStore)
