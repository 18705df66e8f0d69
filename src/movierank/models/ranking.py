"""Ranked movie models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class MovieInfo(BaseModel):
    """Movie identity and display metadata supplied by the caller."""

    movie_id: str = Field(min_length=1, description="External catalog id, e.g. a TMDB id")
    title: str = Field(min_length=1, description="Movie title")
    poster_path: str | None = Field(default=None, description="Poster reference")
    overview: str | None = Field(default=None, description="Short synopsis")


class RankedEntry(BaseModel):
    """One movie at one rank position in a user's list."""

    id: int
    user_id: str
    movie_id: str
    title: str
    poster_path: str | None = None
    overview: str | None = None
    rank: int = Field(ge=1, description="1-based position, 1 is the most preferred")
    created_at: datetime
    updated_at: datetime

    def to_movie(self) -> MovieInfo:
        """Strip storage fields, keeping the movie identity."""
        return MovieInfo(
            movie_id=self.movie_id,
            title=self.title,
            poster_path=self.poster_path,
            overview=self.overview,
        )


class RankingStatus(str, Enum):
    """Outcome of a ranking step."""

    COMPARE = "compare"  # Caller must answer a comparison
    ADDED = "added"  # Movie has been placed


class RankingResult(BaseModel):
    """Result of starting a ranking or answering a comparison."""

    status: RankingStatus
    session_id: str | None = None
    compare_with: RankedEntry | None = None
    rank: int | None = None
    entry: RankedEntry | None = None

    @classmethod
    def compare(cls, session_id: str, compare_with: RankedEntry) -> "RankingResult":
        return cls(status=RankingStatus.COMPARE, session_id=session_id, compare_with=compare_with)

    @classmethod
    def added(cls, entry: RankedEntry, session_id: str | None = None) -> "RankingResult":
        return cls(
            status=RankingStatus.ADDED,
            session_id=session_id,
            rank=entry.rank,
            entry=entry,
        )
