"""Comparison session models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from movierank.models.ranking import MovieInfo


class SessionState(str, Enum):
    """Lifecycle state of a comparison session."""

    OPEN = "open"
    AWAITING_ANSWER = "awaiting_answer"
    CONVERGED = "converged"  # Terminal: movie placed
    ABANDONED = "abandoned"  # Terminal: timed out, cancelled or desynchronized


ACTIVE_STATES = (SessionState.OPEN, SessionState.AWAITING_ANSWER)


class SessionMode(str, Enum):
    """Whether the session places a new movie or re-places a ranked one."""

    INSERT = "insert"
    RERANK = "rerank"


class ComparisonSession(BaseModel):
    """One in-progress binary insertion for one user.

    ``low`` and ``high`` are inclusive 1-based bounds into the user's ordered
    list as it stood when the session started (``snapshot_size`` entries).
    """

    id: str
    user_id: str
    movie: MovieInfo
    mode: SessionMode = SessionMode.INSERT
    original_rank: int | None = Field(default=None, ge=1)
    low: int
    high: int
    mid: int | None = None
    compare_movie_id: str | None = None
    snapshot_size: int = Field(ge=0)
    comparisons: int = 0
    state: SessionState = SessionState.OPEN
    final_rank: int | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES
