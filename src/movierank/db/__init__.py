"""Database module for movierank."""

from movierank.db.connection import get_connection
from movierank.db.repository import ComparisonSessionRepository, RankingRepository

__all__ = ["ComparisonSessionRepository", "RankingRepository", "get_connection"]
