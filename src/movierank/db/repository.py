"""Repository for database operations."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from movierank.db.connection import get_connection
from movierank.models.ranking import MovieInfo, RankedEntry
from movierank.models.session import ComparisonSession, SessionMode, SessionState
from movierank.ranking.errors import (
    DuplicateMovie,
    InvalidRank,
    NotFound,
    SessionAlreadyActive,
)


@contextmanager
def _write_transaction(conn: sqlite3.Connection) -> Iterator[None]:
    """Run the enclosed statements as one write transaction.

    The write lock is taken up front, so counts read inside the block stay
    valid until commit. Any exception rolls the whole block back.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield
    except Exception:
        conn.rollback()
        raise
    conn.commit()


class RankingRepository:
    """Ordered storage of each user's ranked movies.

    Ranks for a user always form the dense sequence 1..N. Every mutation
    shifts neighbouring ranks inside the same transaction as the insert or
    delete, so a partial shift is never visible.
    """

    def get_ordered(self, user_id: str) -> list[RankedEntry]:
        """Get a user's ranked movies, best first."""
        with get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM ranked_movies WHERE user_id = ? ORDER BY rank ASC",
                (user_id,),
            ).fetchall()
            return [self._row_to_entry(row) for row in rows]

    def count(self, user_id: str) -> int:
        """Count a user's ranked movies."""
        with get_connection() as conn:
            return self._count(conn, user_id)

    def get_entry(self, user_id: str, entry_id: int) -> RankedEntry | None:
        """Get a single entry by ID, scoped to its owner."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM ranked_movies WHERE id = ? AND user_id = ?",
                (entry_id, user_id),
            ).fetchone()
            if row:
                return self._row_to_entry(row)
            return None

    def get_by_movie(self, user_id: str, movie_id: str) -> RankedEntry | None:
        """Get a user's entry for a catalog movie, if ranked."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM ranked_movies WHERE user_id = ? AND movie_id = ?",
                (user_id, movie_id),
            ).fetchone()
            if row:
                return self._row_to_entry(row)
            return None

    def movie_at_rank(self, user_id: str, rank: int) -> RankedEntry:
        """Get the entry holding a rank.

        Raises:
            NotFound: If the rank is outside the user's current 1..N range
        """
        with get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM ranked_movies WHERE user_id = ? AND rank = ?",
                (user_id, rank),
            ).fetchone()
            if row is None:
                raise NotFound(f"No movie at rank {rank} for user {user_id}")
            return self._row_to_entry(row)

    def insert_at(self, user_id: str, rank: int, movie: MovieInfo) -> RankedEntry:
        """Insert a movie at a rank, pushing that rank and everything below down.

        Args:
            user_id: Owner of the list
            rank: Target rank, 1..N+1
            movie: Movie to store

        Returns:
            The stored entry

        Raises:
            InvalidRank: If rank is outside 1..N+1
            DuplicateMovie: If the user already ranked this movie
        """
        now = datetime.now(UTC).isoformat()
        with get_connection() as conn:
            with _write_transaction(conn):
                total = self._count(conn, user_id)
                if not 1 <= rank <= total + 1:
                    raise InvalidRank(f"Rank {rank} outside 1..{total + 1} for user {user_id}")

                self._shift(conn, user_id, from_rank=rank, delta=1, now=now)
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO ranked_movies (
                            user_id, movie_id, title, poster_path, overview,
                            rank, created_at, updated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            user_id,
                            movie.movie_id,
                            movie.title,
                            movie.poster_path,
                            movie.overview,
                            rank,
                            now,
                            now,
                        ),
                    )
                except sqlite3.IntegrityError as e:
                    raise DuplicateMovie(
                        f"Movie {movie.movie_id} already ranked for user {user_id}"
                    ) from e

            row = conn.execute(
                "SELECT * FROM ranked_movies WHERE id = ?",
                (cursor.lastrowid,),
            ).fetchone()
            return self._row_to_entry(row)

    def remove_at(self, user_id: str, rank: int) -> RankedEntry:
        """Remove the entry at a rank and close the gap.

        Raises:
            NotFound: If no entry holds that rank
        """
        with get_connection() as conn:
            with _write_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM ranked_movies WHERE user_id = ? AND rank = ?",
                    (user_id, rank),
                ).fetchone()
                if row is None:
                    raise NotFound(f"No movie at rank {rank} for user {user_id}")
                self._delete(conn, row)
            return self._row_to_entry(row)

    def remove_entry(self, user_id: str, entry_id: int) -> RankedEntry:
        """Remove an entry by ID and close the gap.

        Raises:
            NotFound: If the entry does not exist or belongs to another user
        """
        with get_connection() as conn:
            with _write_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM ranked_movies WHERE id = ? AND user_id = ?",
                    (entry_id, user_id),
                ).fetchone()
                if row is None:
                    raise NotFound(f"Ranked entry {entry_id} not found for user {user_id}")
                self._delete(conn, row)
            return self._row_to_entry(row)

    def _delete(self, conn: sqlite3.Connection, row: sqlite3.Row) -> None:
        conn.execute("DELETE FROM ranked_movies WHERE id = ?", (row["id"],))
        self._shift(
            conn,
            row["user_id"],
            from_rank=row["rank"] + 1,
            delta=-1,
            now=datetime.now(UTC).isoformat(),
        )

    def _shift(
        self, conn: sqlite3.Connection, user_id: str, from_rank: int, delta: int, now: str
    ) -> None:
        """Move every rank >= from_rank by delta.

        Ranks pass through negative values so the (user_id, rank) unique
        index is never hit by a half-applied update.
        """
        conn.execute(
            """
            UPDATE ranked_movies SET rank = -(rank + ?), updated_at = ?
            WHERE user_id = ? AND rank >= ?
            """,
            (delta, now, user_id, from_rank),
        )
        conn.execute(
            "UPDATE ranked_movies SET rank = -rank WHERE user_id = ? AND rank < 0",
            (user_id,),
        )

    def _count(self, conn: sqlite3.Connection, user_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS c FROM ranked_movies WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        return int(row["c"])

    def _row_to_entry(self, row: sqlite3.Row) -> RankedEntry:
        """Convert database row to RankedEntry model."""
        return RankedEntry(
            id=row["id"],
            user_id=row["user_id"],
            movie_id=row["movie_id"],
            title=row["title"],
            poster_path=row["poster_path"],
            overview=row["overview"],
            rank=row["rank"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class ComparisonSessionRepository:
    """Repository for comparison session records.

    Finished sessions are kept for a retention period so late answers can be
    told apart from unknown session IDs, then purged.
    """

    def create(self, session: ComparisonSession) -> None:
        """Store a new session.

        Raises:
            SessionAlreadyActive: If the user already has an active session
        """
        with get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO comparison_sessions (
                        id, user_id, movie_id, title, poster_path, overview,
                        mode, original_rank, low, high, mid, compare_movie_id,
                        snapshot_size, comparisons, state, final_rank,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session.id,
                        session.user_id,
                        session.movie.movie_id,
                        session.movie.title,
                        session.movie.poster_path,
                        session.movie.overview,
                        session.mode.value,
                        session.original_rank,
                        session.low,
                        session.high,
                        session.mid,
                        session.compare_movie_id,
                        session.snapshot_size,
                        session.comparisons,
                        session.state.value,
                        session.final_rank,
                        session.created_at.isoformat(timespec="microseconds"),
                        session.updated_at.isoformat(timespec="microseconds"),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise SessionAlreadyActive(
                    f"User {session.user_id} already has an active comparison session"
                ) from e

    def save(self, session: ComparisonSession) -> None:
        """Persist the mutable fields of an existing session."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE comparison_sessions SET
                    low = ?,
                    high = ?,
                    mid = ?,
                    compare_movie_id = ?,
                    comparisons = ?,
                    state = ?,
                    final_rank = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    session.low,
                    session.high,
                    session.mid,
                    session.compare_movie_id,
                    session.comparisons,
                    session.state.value,
                    session.final_rank,
                    session.updated_at.isoformat(timespec="microseconds"),
                    session.id,
                ),
            )
            conn.commit()

    def get_by_id(self, session_id: str) -> ComparisonSession | None:
        """Get a session by ID."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM comparison_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
            if row:
                return self._row_to_session(row)
            return None

    def get_active(self, user_id: str) -> ComparisonSession | None:
        """Get the user's open or awaiting session, if any."""
        with get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM comparison_sessions
                WHERE user_id = ? AND state IN ('open', 'awaiting_answer')
                """,
                (user_id,),
            ).fetchone()
            if row:
                return self._row_to_session(row)
            return None

    def get_idle(self, cutoff: datetime) -> list[ComparisonSession]:
        """Get active sessions last touched at or before cutoff."""
        with get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM comparison_sessions
                WHERE state IN ('open', 'awaiting_answer') AND updated_at <= ?
                ORDER BY updated_at ASC
                """,
                (cutoff.isoformat(timespec="microseconds"),),
            ).fetchall()
            return [self._row_to_session(row) for row in rows]

    def purge_finished(self, cutoff: datetime) -> int:
        """Delete converged and abandoned sessions last touched at or before cutoff.

        Returns:
            Number of sessions deleted
        """
        with get_connection() as conn:
            cursor = conn.execute(
                """
                DELETE FROM comparison_sessions
                WHERE state IN ('converged', 'abandoned') AND updated_at <= ?
                """,
                (cutoff.isoformat(timespec="microseconds"),),
            )
            conn.commit()
            return cursor.rowcount

    def _row_to_session(self, row: sqlite3.Row) -> ComparisonSession:
        """Convert database row to ComparisonSession model."""
        return ComparisonSession(
            id=row["id"],
            user_id=row["user_id"],
            movie=MovieInfo(
                movie_id=row["movie_id"],
                title=row["title"],
                poster_path=row["poster_path"],
                overview=row["overview"],
            ),
            mode=SessionMode(row["mode"]),
            original_rank=row["original_rank"],
            low=row["low"],
            high=row["high"],
            mid=row["mid"],
            compare_movie_id=row["compare_movie_id"],
            snapshot_size=row["snapshot_size"],
            comparisons=row["comparisons"],
            state=SessionState(row["state"]),
            final_rank=row["final_rank"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
