"""Tests for Session Store and storage backends."""

import pytest
from exceptions import StorageError
from fakes import FakeClock
from memory.models import Session
from memory.session_store import SessionStore
from memory.storage import InMemoryStorage, KeyValueStorage, SQLiteStorage
from schemas.context import Persona, Role

DAY_MS = 24 * 60 * 60 * 1000


class FailingStorage(KeyValueStorage):
    """Backend whose every operation fails."""

    def get(self, key):
        raise StorageError("disk unavailable")

    def set(self, key, value):
        raise StorageError("disk unavailable")

    def remove(self, key):
        raise StorageError("disk unavailable")

    def keys(self):
        raise StorageError("disk unavailable")


class TestSessionLifecycle:
    """Test session creation, persistence and expiry."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.storage = InMemoryStorage()
        self.store = SessionStore(storage=self.storage, clock=self.clock)

    def test_round_trip(self):
        """Test a saved session loads back unchanged."""
        session = self.store.create_session(persona=Persona.FUN, user_name="花子")
        self.store.append_message(session, Role.USER, "こんにちは")
        self.store.append_message(session, Role.ASSISTANT, "こんにちは！")
        self.store.save(session)

        loaded = self.store.load(session.session_id)

        assert loaded.persona == Persona.FUN
        assert loaded.user_name == "花子"
        assert loaded.messages == session.messages

    def test_create_session_selects_it_as_current(self):
        """Test the newest session becomes the current one."""
        session = self.store.create_session()

        assert self.storage.get("currentSessionId") == session.session_id
        assert self.store.get_current().session_id == session.session_id

    def test_create_session_with_chosen_id(self):
        """Test a caller-supplied ID is kept."""
        session = self.store.create_session(session_id="abc123")

        assert session.session_id == "abc123"
        assert self.store.load("abc123") is not None

    def test_unknown_session_is_none(self):
        """Test loading a missing session returns None."""
        assert self.store.load("missing") is None

    def test_session_valid_up_to_ttl(self):
        """Test a session exactly at the TTL is still live."""
        session = self.store.create_session()
        self.clock.now += DAY_MS

        assert self.store.load(session.session_id) is not None

    def test_session_expires_after_ttl(self):
        """Test an expired session is treated as absent and deleted."""
        session = self.store.create_session()
        self.clock.now += DAY_MS + 1

        assert self.store.load(session.session_id) is None
        assert self.storage.get(f"session_{session.session_id}") is None
        assert self.storage.get("currentSessionId") is None

    def test_save_refreshes_last_access(self):
        """Test saving extends the session lifetime."""
        session = self.store.create_session()
        self.clock.now += DAY_MS - 1
        self.store.save(session)
        self.clock.now += DAY_MS - 1

        assert self.store.load(session.session_id) is not None

    def test_initialize_session_resumes_current(self):
        """Test initialize_session reuses the live current session."""
        first = self.store.initialize_session()
        second = self.store.initialize_session(persona=Persona.STRICT)

        assert second.session_id == first.session_id
        assert second.persona == Persona.CARING

    def test_initialize_session_after_expiry(self):
        """Test initialize_session starts over once the current session expired."""
        first = self.store.initialize_session()
        self.clock.now += DAY_MS + 1
        second = self.store.initialize_session(persona=Persona.STRICT)

        assert second.session_id != first.session_id
        assert second.persona == Persona.STRICT

    def test_purge_expired(self):
        """Test purge removes only expired sessions."""
        old = self.store.create_session()
        self.clock.now += DAY_MS - 10
        fresh = self.store.create_session()
        self.clock.now += 11

        assert self.store.purge_expired() == 1
        assert self.store.load(old.session_id) is None
        assert self.store.load(fresh.session_id) is not None

    def test_removal_listeners_see_expired_and_corrupt_sessions(self):
        """Test listeners are told about every session the store drops."""
        removed = []
        self.store.add_removal_listener(removed.append)

        old = self.store.create_session()
        self.storage.set("session_bad", "{not json")
        self.clock.now += DAY_MS + 1

        assert self.store.purge_expired() == 2
        assert sorted(removed) == sorted([old.session_id, "bad"])


class TestMessageCap:
    """Test message ordering and eviction."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.store = SessionStore(storage=InMemoryStorage(), clock=self.clock)

    def test_oldest_message_evicted_at_cap(self):
        """Test the 101st message evicts exactly the oldest one."""
        session = self.store.create_session()
        for i in range(101):
            self.store.append_message(session, Role.USER, str(i))
        self.store.save(session)

        loaded = self.store.load(session.session_id)

        assert len(loaded.messages) == 100
        assert loaded.messages[0].content == "1"
        assert loaded.messages[-1].content == "100"

    def test_timestamps_never_decrease(self):
        """Test a clock going backwards does not reorder messages."""
        session = self.store.create_session()
        self.store.append_message(session, Role.USER, "first")
        self.clock.now -= 5000
        self.store.append_message(session, Role.ASSISTANT, "second")

        timestamps = [msg.timestamp for msg in session.messages]
        assert timestamps == sorted(timestamps)

    def test_oversized_stored_session_is_trimmed_on_load(self):
        """Test records over the cap are trimmed to the newest messages."""
        store = SessionStore(storage=InMemoryStorage(), max_messages=3, clock=self.clock)
        session = Session(created_at=self.clock.now, last_accessed_at=self.clock.now)
        for i in range(5):
            session.append_message(Role.USER, str(i), now=self.clock.now, max_messages=10)
        store.storage.set(f"session_{session.session_id}", session.model_dump_json())

        loaded = store.load(session.session_id)

        assert [msg.content for msg in loaded.messages] == ["2", "3", "4"]


class TestCorruptionAndFailure:
    """Test recovery from bad data and storage failures."""

    def setup_method(self):
        """Set up test fixtures."""
        self.storage = InMemoryStorage()
        self.store = SessionStore(storage=self.storage, clock=FakeClock())

    def test_unparseable_record_is_discarded(self):
        """Test invalid JSON is treated as absent and removed."""
        self.storage.set("session_bad", "{not json")

        assert self.store.load("bad") is None
        assert self.storage.get("session_bad") is None

    def test_wrong_shape_record_is_discarded(self):
        """Test valid JSON with a wrong shape is treated as absent."""
        self.storage.set("session_bad", '{"messages": "oops"}')

        assert self.store.load("bad") is None
        assert "session_bad" not in self.storage.keys()

    def test_storage_failure_falls_back_to_memory(self):
        """Test a failing backend is replaced without surfacing errors."""
        store = SessionStore(storage=FailingStorage(), clock=FakeClock())

        session = store.create_session()
        store.append_message(session, Role.USER, "こんにちは")
        store.save(session)

        assert store.degraded is True
        assert isinstance(store.storage, InMemoryStorage)
        assert store.load(session.session_id).messages[0].content == "こんにちは"

    def test_purge_with_failing_storage(self):
        """Test purge tolerates a failing backend."""
        store = SessionStore(storage=FailingStorage(), clock=FakeClock())

        assert store.purge_expired() == 0
        assert store.degraded is True


class TestSQLiteStorage:
    """Test SQLite backend."""

    def test_round_trip(self, tmp_path):
        """Test values survive a new storage instance."""
        db_path = tmp_path / "sessions.db"
        SQLiteStorage(db_path=str(db_path)).set("k", "v")

        storage = SQLiteStorage(db_path=str(db_path))
        assert storage.get("k") == "v"
        assert storage.keys() == ["k"]

        storage.remove("k")
        assert storage.get("k") is None
        storage.remove("k")

    def test_sessions_persist_across_stores(self, tmp_path):
        """Test a session saved by one store is loaded by another."""
        db_path = str(tmp_path / "sessions.db")
        clock = FakeClock()
        first = SessionStore(storage=SQLiteStorage(db_path), clock=clock)
        session = first.create_session(persona=Persona.STRICT)
        first.append_message(session, Role.USER, "宿題が終わらない")
        first.save(session)

        second = SessionStore(storage=SQLiteStorage(db_path), clock=clock)
        loaded = second.get_current()

        assert loaded.session_id == session.session_id
        assert loaded.persona == Persona.STRICT
        assert loaded.messages[0].content == "宿題が終わらない"

    def test_unusable_path_raises_storage_error(self, tmp_path):
        """Test initialization failures are reported as StorageError."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")

        with pytest.raises(StorageError):
            SQLiteStorage(db_path=str(blocker / "sessions.db"))
