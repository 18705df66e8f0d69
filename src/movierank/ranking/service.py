"""Ranking service: place movies in a user's list through pairwise comparisons.

A caller starts a session for a movie, the service answers with a ranked
movie to compare against, and each submitted preference halves the remaining
range until the movie's rank is known. Sessions survive between calls in the
database, one active session per user.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from movierank.config import get_settings
from movierank.db.repository import ComparisonSessionRepository, RankingRepository
from movierank.models.ranking import MovieInfo, RankedEntry, RankingResult
from movierank.models.session import ComparisonSession, SessionMode, SessionState
from movierank.ranking.binary_insert import initial_bounds, is_converged, midpoint, narrow
from movierank.ranking.errors import (
    DuplicateMovie,
    InvalidPreference,
    InvalidRank,
    InvalidSessionState,
    NotFound,
    SessionAlreadyActive,
    SessionDesynchronized,
)
from movierank.ranking.locks import UserLocks

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RankingService:
    """Public operations of the ranking engine."""

    def __init__(
        self,
        store: RankingRepository | None = None,
        sessions: ComparisonSessionRepository | None = None,
        idle_timeout: timedelta | None = None,
        now: Callable[[], datetime] = _utcnow,
        locks: UserLocks | None = None,
        retention: timedelta | None = None,
    ) -> None:
        if idle_timeout is None or retention is None:
            settings = get_settings()
            if idle_timeout is None:
                idle_timeout = timedelta(seconds=settings.session_idle_timeout_seconds)
            if retention is None:
                retention = timedelta(seconds=settings.session_retention_seconds)
        self.store = store or RankingRepository()
        self.sessions = sessions or ComparisonSessionRepository()
        self.idle_timeout = idle_timeout
        self.retention = retention
        self._now = now
        self._locks = locks or UserLocks()

    # Starting sessions

    def start_insertion(self, user_id: str, movie: MovieInfo) -> RankingResult:
        """Start placing a newly watched movie.

        Returns an ``added`` result straight away when the list is empty,
        otherwise a ``compare`` result naming the first movie to compare with.

        Raises:
            SessionAlreadyActive: If the user has an unfinished session
            DuplicateMovie: If the movie is already ranked
        """
        with self._locks.hold(user_id):
            self._expire_user(user_id)
            self._ensure_no_active(user_id)
            if self.store.get_by_movie(user_id, movie.movie_id) is not None:
                raise DuplicateMovie(f"Movie {movie.movie_id} already ranked for user {user_id}")
            logger.info("Starting insertion of movie %s for user %s", movie.movie_id, user_id)
            return self._begin(user_id, movie, SessionMode.INSERT)

    def start_rerank(self, user_id: str, entry_id: int) -> RankingResult:
        """Start re-placing an already ranked movie.

        The entry is taken out of the list first so it is never compared
        against itself. If the session cannot be started the entry goes back
        where it was.

        Raises:
            NotFound: If the entry does not belong to the user
            SessionAlreadyActive: If the user has an unfinished session
            SessionDesynchronized: If the list changed while starting
        """
        with self._locks.hold(user_id):
            self._expire_user(user_id)
            self._ensure_no_active(user_id)
            entry = self.store.get_entry(user_id, entry_id)
            if entry is None:
                raise NotFound(f"Ranked entry {entry_id} not found for user {user_id}")

            removed = self.store.remove_at(user_id, entry.rank)
            logger.info(
                "Starting rerank of movie %s (rank %d) for user %s",
                removed.movie_id,
                removed.rank,
                user_id,
            )
            try:
                return self._begin(
                    user_id, removed.to_movie(), SessionMode.RERANK, original_rank=removed.rank
                )
            except NotFound as e:
                self._restore(user_id, removed.to_movie(), removed.rank)
                raise SessionDesynchronized(
                    f"Ranked list for user {user_id} changed while starting rerank"
                ) from e
            except Exception:
                self._restore(user_id, removed.to_movie(), removed.rank)
                raise

    # Answering

    def submit_comparison(self, session_id: str, preferred_movie_id: str) -> RankingResult:
        """Record which of the two compared movies the user prefers.

        Args:
            session_id: Session returned by a start call
            preferred_movie_id: Either the movie being placed or the movie it
                was compared with

        Raises:
            NotFound: If the session does not exist
            InvalidSessionState: If the session is not waiting for an answer
            InvalidPreference: If the movie is not one of the compared pair
            SessionDesynchronized: If the list changed under the session
        """
        user_id = self._session_owner(session_id)
        with self._locks.hold(user_id):
            session = self._awaiting_session(session_id)
            if preferred_movie_id == session.movie.movie_id:
                new_preferred = True
            elif preferred_movie_id == session.compare_movie_id:
                new_preferred = False
            else:
                raise InvalidPreference(
                    f"Movie {preferred_movie_id} is not part of the pending comparison "
                    f"({session.movie.movie_id} vs {session.compare_movie_id})"
                )
            return self._advance(session, new_preferred)

    def submit_preference(self, session_id: str, new_movie_preferred: bool) -> RankingResult:
        """Record an answer as a flag: True if the movie being placed wins."""
        user_id = self._session_owner(session_id)
        with self._locks.hold(user_id):
            session = self._awaiting_session(session_id)
            return self._advance(session, new_movie_preferred)

    def current_comparison(self, session_id: str) -> RankingResult:
        """Re-present the comparison a session is waiting on."""
        user_id = self._session_owner(session_id)
        with self._locks.hold(user_id):
            session = self._awaiting_session(session_id)
            return RankingResult.compare(session.id, self._verified_target(session))

    def cancel_session(self, session_id: str) -> ComparisonSession:
        """Abandon an unfinished session at the caller's request.

        Raises:
            NotFound: If the session does not exist
            InvalidSessionState: If the session has already finished
        """
        user_id = self._session_owner(session_id)
        with self._locks.hold(user_id):
            session = self._get_session(session_id)
            if not session.is_active:
                raise InvalidSessionState(
                    f"Session {session_id} is already {session.state.value}",
                    state=session.state.value,
                )
            self._abandon(session, "cancelled")
            return session

    def get_active_session(self, user_id: str) -> ComparisonSession | None:
        """Get the user's unfinished session so a client can resume it."""
        with self._locks.hold(user_id):
            self._expire_user(user_id)
            return self.sessions.get_active(user_id)

    def expire_idle_sessions(self) -> int:
        """Abandon every session idle past the timeout. Returns how many.

        Finished sessions older than the retention period are deleted in the
        same sweep.
        """
        expired = 0
        for stale in self.sessions.get_idle(self._now() - self.idle_timeout):
            with self._locks.hold(stale.user_id):
                if self._expire_user(stale.user_id):
                    expired += 1
        self.purge_finished_sessions()
        return expired

    def purge_finished_sessions(self) -> int:
        """Delete finished sessions past the retention period. Returns how many."""
        purged = self.sessions.purge_finished(self._now() - self.retention)
        if purged:
            logger.info("Purged %d finished comparison sessions", purged)
        return purged

    # Ranked list

    def get_ordered(self, user_id: str) -> list[RankedEntry]:
        """Get the user's ranked movies, best first."""
        with self._locks.hold(user_id):
            return self.store.get_ordered(user_id)

    def remove_at(self, user_id: str, rank: int) -> RankedEntry:
        """Remove the movie at a rank.

        Raises:
            NotFound: If no movie holds that rank
            SessionAlreadyActive: If a session is placing a movie in this list
        """
        with self._locks.hold(user_id):
            self._expire_user(user_id)
            self._ensure_no_active(user_id)
            removed = self.store.remove_at(user_id, rank)
            logger.info(
                "Removed movie %s from rank %d for user %s", removed.movie_id, rank, user_id
            )
            return removed

    def remove_entry(self, user_id: str, entry_id: int) -> RankedEntry:
        """Remove a ranked entry by ID."""
        with self._locks.hold(user_id):
            self._expire_user(user_id)
            self._ensure_no_active(user_id)
            removed = self.store.remove_entry(user_id, entry_id)
            logger.info(
                "Removed movie %s from rank %d for user %s",
                removed.movie_id,
                removed.rank,
                user_id,
            )
            return removed

    # Internals; callers hold the user's lock

    def _begin(
        self,
        user_id: str,
        movie: MovieInfo,
        mode: SessionMode,
        original_rank: int | None = None,
    ) -> RankingResult:
        size = self.store.count(user_id)
        if size == 0:
            entry = self.store.insert_at(user_id, 1, movie)
            logger.info("Placed movie %s at rank 1 for user %s", movie.movie_id, user_id)
            return RankingResult.added(entry)

        low, high = initial_bounds(size)
        now = self._now()
        session = ComparisonSession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            movie=movie,
            mode=mode,
            original_rank=original_rank,
            low=low,
            high=high,
            snapshot_size=size,
            state=SessionState.OPEN,
            created_at=now,
            updated_at=now,
        )
        target = self._present(session)
        self.sessions.create(session)
        return RankingResult.compare(session.id, target)

    def _present(self, session: ComparisonSession) -> RankedEntry:
        """Pick the next movie to compare against and wait for an answer."""
        mid = midpoint(session.low, session.high)
        target = self.store.movie_at_rank(session.user_id, mid)
        session.mid = mid
        session.compare_movie_id = target.movie_id
        session.state = SessionState.AWAITING_ANSWER
        session.updated_at = self._now()
        return target

    def _advance(self, session: ComparisonSession, new_preferred: bool) -> RankingResult:
        offered = self._verified_target(session)

        session.low, session.high = narrow(session.low, session.high, offered.rank, new_preferred)
        session.comparisons += 1
        session.state = SessionState.OPEN
        logger.debug(
            "Session %s answer %d: new preferred=%s, bounds [%d, %d]",
            session.id,
            session.comparisons,
            new_preferred,
            session.low,
            session.high,
        )

        if is_converged(session.low, session.high):
            return self._finalize(session)

        try:
            target = self._present(session)
        except NotFound as e:
            self._abandon(session, "desynchronized")
            raise SessionDesynchronized(
                f"Ranked list for user {session.user_id} changed during session {session.id}"
            ) from e
        self.sessions.save(session)
        return RankingResult.compare(session.id, target)

    def _finalize(self, session: ComparisonSession) -> RankingResult:
        try:
            entry = self.store.insert_at(session.user_id, session.low, session.movie)
        except (InvalidRank, DuplicateMovie) as e:
            self._abandon(session, "desynchronized")
            raise SessionDesynchronized(
                f"Could not place movie {session.movie.movie_id} at rank {session.low}: {e}"
            ) from e

        session.state = SessionState.CONVERGED
        session.final_rank = entry.rank
        session.mid = None
        session.compare_movie_id = None
        session.updated_at = self._now()
        self.sessions.save(session)
        logger.info(
            "Placed movie %s at rank %d for user %s after %d comparisons",
            entry.movie_id,
            entry.rank,
            session.user_id,
            session.comparisons,
        )
        return RankingResult.added(entry, session.id)

    def _verified_target(self, session: ComparisonSession) -> RankedEntry:
        """Check the list still matches the session's snapshot.

        Raises:
            SessionDesynchronized: If the list size or the offered movie changed
        """
        size = self.store.count(session.user_id)
        target = None
        if size == session.snapshot_size and session.mid is not None:
            try:
                target = self.store.movie_at_rank(session.user_id, session.mid)
            except NotFound:
                target = None
        if target is None or target.movie_id != session.compare_movie_id:
            self._abandon(session, "desynchronized")
            raise SessionDesynchronized(
                f"Ranked list for user {session.user_id} changed during session {session.id}"
            )
        return target

    def _abandon(self, session: ComparisonSession, reason: str) -> None:
        session.state = SessionState.ABANDONED
        session.mid = None
        session.compare_movie_id = None
        session.updated_at = self._now()
        self.sessions.save(session)
        logger.warning(
            "Abandoned session %s for user %s (%s)", session.id, session.user_id, reason
        )
        if session.mode == SessionMode.RERANK and session.original_rank is not None:
            self._restore(session.user_id, session.movie, session.original_rank)

    def _restore(self, user_id: str, movie: MovieInfo, original_rank: int) -> None:
        """Put a reranked movie back where it was, or last if the list shrank."""
        if self.store.get_by_movie(user_id, movie.movie_id) is not None:
            logger.warning(
                "Movie %s already back in list for user %s, not restoring",
                movie.movie_id,
                user_id,
            )
            return
        rank = min(original_rank, self.store.count(user_id) + 1)
        self.store.insert_at(user_id, rank, movie)
        logger.info("Restored movie %s to rank %d for user %s", movie.movie_id, rank, user_id)

    def _expire_user(self, user_id: str) -> bool:
        """Abandon the user's session if it has been idle too long."""
        active = self.sessions.get_active(user_id)
        if active is None or self._now() - active.updated_at < self.idle_timeout:
            return False
        self._abandon(active, "idle timeout")
        return True

    def _ensure_no_active(self, user_id: str) -> None:
        active = self.sessions.get_active(user_id)
        if active is not None:
            raise SessionAlreadyActive(
                f"User {user_id} already has an active comparison session {active.id}",
                session_id=active.id,
            )

    def _get_session(self, session_id: str) -> ComparisonSession:
        session = self.sessions.get_by_id(session_id)
        if session is None:
            raise NotFound(f"Comparison session {session_id} not found")
        return session

    def _session_owner(self, session_id: str) -> str:
        return self._get_session(session_id).user_id

    def _awaiting_session(self, session_id: str) -> ComparisonSession:
        """Load a session that must be waiting for an answer."""
        session = self._get_session(session_id)
        if session.is_active:
            self._expire_user(session.user_id)
            session = self._get_session(session_id)
        if session.state != SessionState.AWAITING_ANSWER:
            raise InvalidSessionState(
                f"Session {session_id} is {session.state.value}, not awaiting an answer",
                state=session.state.value,
            )
        return session
