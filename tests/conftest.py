"""pytest configuration and shared fixtures."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from movierank.db.repository import ComparisonSessionRepository, RankingRepository
from movierank.models.ranking import MovieInfo, RankedEntry
from movierank.ranking.service import RankingService


@pytest.fixture(autouse=True)
def use_test_database() -> Iterator[sqlite3.Connection]:
    """Use an isolated in-memory database for all tests.

    This fixture runs automatically for all tests to ensure they
    don't affect the real database.
    """
    from movierank.db.migrate import SCHEMA

    test_conn = sqlite3.connect(":memory:", check_same_thread=False)
    test_conn.row_factory = sqlite3.Row
    test_conn.executescript(SCHEMA)
    test_conn.commit()

    @contextmanager
    def mock_get_connection() -> Iterator[sqlite3.Connection]:
        """Return the test connection as a context manager."""
        yield test_conn

    # Patch in all modules that import get_connection
    with (
        patch("movierank.db.connection.get_connection", mock_get_connection),
        patch("movierank.db.repository.get_connection", mock_get_connection),
        patch("movierank.db.migrate.get_connection", mock_get_connection),
    ):
        yield test_conn

    test_conn.close()


class FakeClock:
    """Controllable UTC clock for session timeouts."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> RankingRepository:
    return RankingRepository()


@pytest.fixture
def service(clock: FakeClock) -> RankingService:
    return RankingService(
        store=RankingRepository(),
        sessions=ComparisonSessionRepository(),
        idle_timeout=timedelta(minutes=15),
        now=clock,
        retention=timedelta(days=1),
    )


def movie(title: str, movie_id: str | None = None) -> MovieInfo:
    """Build a movie whose ID defaults to its title."""
    return MovieInfo(movie_id=movie_id or title, title=title)


def seed(store: RankingRepository, user_id: str, titles: list[str]) -> list[RankedEntry]:
    """Append movies to a user's list in the given order."""
    for title in titles:
        store.insert_at(user_id, store.count(user_id) + 1, movie(title))
    return store.get_ordered(user_id)


def titles(entries: list[RankedEntry]) -> list[str]:
    return [e.title for e in entries]
