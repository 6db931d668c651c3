"""
Tests for the TTL-bound progress store.
"""

import pytest

from powindex.shared.progress_tracker import InMemoryProgressStore
from factories import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryProgressStore(ttl_seconds=300, clock=clock)


class TestProgressStore:

    def test_set_then_get(self, store, clock):
        store.set_progress("alice", "fetching", "Fetching activity", 10)

        state = store.get_progress("alice")

        assert state.stage == "fetching"
        assert state.percent == 10
        assert state.updated_at == clock.now

    def test_unknown_subject(self, store):
        assert store.get_progress("nobody") is None

    def test_overwrite_refreshes_timestamp(self, store, clock):
        store.set_progress("alice", "fetching", "", 10)
        clock.advance(200)
        store.set_progress("alice", "scoring", "", 80)
        clock.advance(200)

        state = store.get_progress("alice")

        assert state is not None
        assert state.stage == "scoring"

    def test_expires_after_ttl(self, store, clock):
        store.set_progress("alice", "complete", "done", 100)
        clock.advance(301)

        assert store.get_progress("alice") is None
        # evicted entry stays gone
        clock.advance(-301)
        assert store.get_progress("alice") is None

    def test_entry_alive_at_ttl_boundary(self, store, clock):
        store.set_progress("alice", "analyzing", "", 50)
        clock.advance(300)
        assert store.get_progress("alice") is not None

    def test_subjects_independent(self, store, clock):
        store.set_progress("alice", "fetching", "", 10)
        clock.advance(250)
        store.set_progress("bob", "fetching", "", 10)
        clock.advance(100)

        assert store.get_progress("alice") is None
        assert store.get_progress("bob") is not None

    @pytest.mark.parametrize("percent,expected", [(-5, 0), (150, 100), (42, 42)])
    def test_percent_clamped(self, store, percent, expected):
        assert store.set_progress("alice", "x", "", percent).percent == expected

    def test_clear(self, store):
        store.set_progress("alice", "fetching", "", 10)
        store.clear_progress("alice")
        store.clear_progress("never-set")
        assert store.get_progress("alice") is None

    def test_to_dict(self, store):
        data = store.set_progress("alice", "saving", "Saving profile", 90).to_dict()
        assert data["subject"] == "alice"
        assert data["message"] == "Saving profile"
