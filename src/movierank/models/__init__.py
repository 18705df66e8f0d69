"""Pydantic models for movierank."""

from movierank.models.ranking import MovieInfo, RankedEntry, RankingResult, RankingStatus
from movierank.models.session import ComparisonSession, SessionMode, SessionState

__all__ = [
    "ComparisonSession",
    "MovieInfo",
    "RankedEntry",
    "RankingResult",
    "RankingStatus",
    "SessionMode",
    "SessionState",
]
