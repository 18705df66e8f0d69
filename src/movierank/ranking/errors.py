"""Errors raised by the ranking engine."""


class RankingError(Exception):
    """Base class for ranking errors."""


class NotFound(RankingError):
    """No ranked entry or session exists at the given key."""


class InvalidRank(RankingError):
    """Requested rank is outside the valid range for the user's list."""


class DuplicateMovie(RankingError):
    """Movie is already in the user's ranking."""


class SessionAlreadyActive(RankingError):
    """The user already has an open comparison session."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class InvalidSessionState(RankingError):
    """Operation is not allowed in the session's current state."""

    def __init__(self, message: str, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class InvalidPreference(RankingError):
    """Preferred movie is neither of the two movies being compared."""


class SessionDesynchronized(RankingError):
    """The ranked list changed underneath an open session.

    The session is abandoned; callers must start a new one.
    """
