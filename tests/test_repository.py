"""Tests for ranked movie and session storage."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from conftest import movie, seed, titles
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from movierank.db.repository import ComparisonSessionRepository, RankingRepository
from movierank.models.session import ComparisonSession, SessionState
from movierank.ranking.errors import (
    DuplicateMovie,
    InvalidRank,
    NotFound,
    SessionAlreadyActive,
)


def assert_dense(store: RankingRepository, user_id: str) -> None:
    ranks = [e.rank for e in store.get_ordered(user_id)]
    assert ranks == list(range(1, len(ranks) + 1))


class TestReads:
    """Tests for ordered reads and point lookups."""

    def test_empty_user(self, store: RankingRepository) -> None:
        assert store.get_ordered("nobody") == []
        assert store.count("nobody") == 0

    def test_ordered_by_rank(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B", "C"])
        entries = store.get_ordered("alice")
        assert titles(entries) == ["A", "B", "C"]
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_movie_at_rank(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B"])
        assert store.movie_at_rank("alice", 2).title == "B"

    @pytest.mark.parametrize("rank", [0, 3, -1])
    def test_movie_at_rank_out_of_range(self, store: RankingRepository, rank: int) -> None:
        seed(store, "alice", ["A", "B"])
        with pytest.raises(NotFound):
            store.movie_at_rank("alice", rank)

    def test_users_are_isolated(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B"])
        seed(store, "bob", ["B"])
        assert titles(store.get_ordered("bob")) == ["B"]
        assert store.get_by_movie("bob", "A") is None
        assert store.get_by_movie("alice", "A") is not None

    def test_get_entry_scoped_to_owner(self, store: RankingRepository) -> None:
        (entry,) = seed(store, "alice", ["A"])
        assert store.get_entry("alice", entry.id) == entry
        assert store.get_entry("bob", entry.id) is None


class TestInsertAt:
    """Tests for inserting with rank shifting."""

    def test_insert_first(self, store: RankingRepository) -> None:
        entry = store.insert_at("alice", 1, movie("A"))
        assert entry.rank == 1
        assert entry.user_id == "alice"
        assert entry.created_at.tzinfo is not None

    def test_insert_top_shifts_everything(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B"])
        store.insert_at("alice", 1, movie("Z"))
        assert titles(store.get_ordered("alice")) == ["Z", "A", "B"]
        assert_dense(store, "alice")

    def test_insert_middle(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B", "C"])
        store.insert_at("alice", 3, movie("D"))
        assert titles(store.get_ordered("alice")) == ["A", "B", "D", "C"]

    def test_append(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B"])
        entry = store.insert_at("alice", 3, movie("C"))
        assert entry.rank == 3

    @pytest.mark.parametrize("rank", [0, -2, 4])
    def test_invalid_rank(self, store: RankingRepository, rank: int) -> None:
        seed(store, "alice", ["A", "B"])
        with pytest.raises(InvalidRank):
            store.insert_at("alice", rank, movie("C"))
        assert titles(store.get_ordered("alice")) == ["A", "B"]

    def test_duplicate_movie_rolls_back_shift(self, store: RankingRepository) -> None:
        """A rejected insert leaves existing ranks untouched."""
        seed(store, "alice", ["A", "B", "C"])
        with pytest.raises(DuplicateMovie):
            store.insert_at("alice", 1, movie("C"))
        assert titles(store.get_ordered("alice")) == ["A", "B", "C"]
        assert_dense(store, "alice")

    def test_same_movie_for_different_users(self, store: RankingRepository) -> None:
        store.insert_at("alice", 1, movie("A"))
        store.insert_at("bob", 1, movie("A"))
        assert store.count("alice") == store.count("bob") == 1


class TestRemove:
    """Tests for removal with gap closing."""

    def test_remove_at_closes_gap(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B", "C", "D"])
        removed = store.remove_at("alice", 2)
        assert removed.title == "B"
        assert removed.rank == 2
        assert titles(store.get_ordered("alice")) == ["A", "C", "D"]
        assert_dense(store, "alice")

    def test_remove_last(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A", "B"])
        store.remove_at("alice", 2)
        assert titles(store.get_ordered("alice")) == ["A"]

    def test_remove_at_missing(self, store: RankingRepository) -> None:
        seed(store, "alice", ["A"])
        with pytest.raises(NotFound):
            store.remove_at("alice", 2)

    def test_remove_entry(self, store: RankingRepository) -> None:
        entries = seed(store, "alice", ["A", "B", "C"])
        removed = store.remove_entry("alice", entries[0].id)
        assert removed.title == "A"
        assert titles(store.get_ordered("alice")) == ["B", "C"]
        assert_dense(store, "alice")

    def test_remove_entry_of_other_user(self, store: RankingRepository) -> None:
        entries = seed(store, "alice", ["A"])
        with pytest.raises(NotFound):
            store.remove_entry("bob", entries[0].id)
        assert store.count("alice") == 1


class TestDenseRankInvariant:
    """Ranks stay exactly 1..N under arbitrary mutations."""

    @given(
        ops=st.lists(
            st.tuples(st.booleans(), st.integers(min_value=1, max_value=30)),
            max_size=40,
        )
    )
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_random_inserts_and_removes(self, ops: list[tuple[bool, int]]) -> None:
        """Property: after any sequence of valid insert/remove calls, ranks are 1..N
        and the order matches a plain list receiving the same operations."""
        store = RankingRepository()
        user_id = uuid.uuid4().hex
        model: list[str] = []

        for i, (is_insert, position) in enumerate(ops):
            if is_insert or not model:
                rank = min(position, len(model) + 1)
                title = f"movie-{i}"
                store.insert_at(user_id, rank, movie(title))
                model.insert(rank - 1, title)
            else:
                rank = min(position, len(model))
                store.remove_at(user_id, rank)
                del model[rank - 1]

        assert titles(store.get_ordered(user_id)) == model
        assert_dense(store, user_id)


def make_session(
    user_id: str = "alice", updated_at: datetime | None = None, **overrides: object
) -> ComparisonSession:
    now = updated_at or datetime(2026, 1, 1, tzinfo=UTC)
    fields: dict[str, object] = {
        "id": uuid.uuid4().hex,
        "user_id": user_id,
        "movie": movie("New"),
        "low": 1,
        "high": 3,
        "mid": 2,
        "compare_movie_id": "B",
        "snapshot_size": 3,
        "state": SessionState.AWAITING_ANSWER,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return ComparisonSession.model_validate(fields)


class TestComparisonSessionRepository:
    """Tests for session persistence and the one-active-session gate."""

    def test_create_and_get(self) -> None:
        repo = ComparisonSessionRepository()
        session = make_session()
        repo.create(session)
        loaded = repo.get_by_id(session.id)
        assert loaded is not None
        assert loaded.model_dump() == session.model_dump()
        assert repo.get_active("alice").id == session.id  # type: ignore[union-attr]

    def test_unknown_session(self) -> None:
        assert ComparisonSessionRepository().get_by_id("missing") is None

    def test_second_active_session_rejected(self) -> None:
        repo = ComparisonSessionRepository()
        repo.create(make_session())
        with pytest.raises(SessionAlreadyActive):
            repo.create(make_session())

    def test_finished_session_releases_gate(self) -> None:
        repo = ComparisonSessionRepository()
        first = make_session()
        repo.create(first)
        first.state = SessionState.CONVERGED
        first.final_rank = 2
        repo.save(first)

        assert repo.get_active("alice") is None
        repo.create(make_session())
        assert repo.get_by_id(first.id).final_rank == 2  # type: ignore[union-attr]

    def test_other_users_not_gated(self) -> None:
        repo = ComparisonSessionRepository()
        repo.create(make_session("alice"))
        repo.create(make_session("bob"))
        assert repo.get_active("bob") is not None

    def test_save_updates_bounds(self) -> None:
        repo = ComparisonSessionRepository()
        session = make_session()
        repo.create(session)
        session.low, session.high, session.mid = 3, 3, 3
        session.comparisons = 1
        repo.save(session)
        loaded = repo.get_by_id(session.id)
        assert loaded is not None
        assert (loaded.low, loaded.high, loaded.mid, loaded.comparisons) == (3, 3, 3, 1)

    def test_get_idle(self) -> None:
        repo = ComparisonSessionRepository()
        base = datetime(2026, 1, 1, tzinfo=UTC)
        old = make_session("alice", updated_at=base)
        fresh = make_session("bob", updated_at=base + timedelta(minutes=30))
        done = make_session("carol", updated_at=base, state=SessionState.ABANDONED)
        for s in (old, fresh, done):
            repo.create(s)

        idle = repo.get_idle(base + timedelta(minutes=15))
        assert [s.id for s in idle] == [old.id]

    def test_purge_finished(self) -> None:
        repo = ComparisonSessionRepository()
        base = datetime(2026, 1, 1, tzinfo=UTC)
        old_converged = make_session(updated_at=base, state=SessionState.CONVERGED)
        old_abandoned = make_session(updated_at=base, state=SessionState.ABANDONED)
        recent = make_session(updated_at=base + timedelta(days=2), state=SessionState.CONVERGED)
        active = make_session(updated_at=base)
        for s in (old_converged, old_abandoned, recent, active):
            repo.create(s)

        assert repo.purge_finished(base + timedelta(days=1)) == 2
        assert repo.get_by_id(old_converged.id) is None
        assert repo.get_by_id(old_abandoned.id) is None
        assert repo.get_by_id(recent.id) is not None
        assert repo.get_by_id(active.id) is not None
        assert repo.purge_finished(base + timedelta(days=1)) == 0
