"""Terminal front end for ranking movies.

Usage:
    python -m movierank.cli <command> <user_id> [args...]

Commands:
    list <user_id>                          Show ranked movies
    add <user_id> <movie_id> <title>        Rank a new movie interactively
    rerank <user_id> <entry_id>             Re-place a ranked movie interactively
    remove <user_id> <rank>                 Remove the movie at a rank
    resume <user_id>                        Continue an unfinished session
    cancel <user_id>                        Abandon an unfinished session
    expire                                  Abandon all idle sessions
"""

import logging
import sys
from collections.abc import Callable

from movierank.db.migrate import migrate
from movierank.models.ranking import MovieInfo, RankedEntry, RankingResult, RankingStatus
from movierank.ranking.errors import RankingError
from movierank.ranking.service import RankingService

logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]


def format_ranking(entries: list[RankedEntry]) -> str:
    """Render a ranked list, one movie per line."""
    if not entries:
        return "No ranked movies yet."
    width = len(str(entries[-1].rank))
    return "\n".join(f"{e.rank:>{width}}. {e.title} (#{e.id})" for e in entries)


def run_comparisons(
    service: RankingService,
    movie: MovieInfo,
    result: RankingResult,
    ask: Prompt = input,
) -> RankingResult:
    """Ask the user each pending comparison until the movie is placed.

    Entering ``q`` stops without answering; the session stays open and can
    be resumed later.
    """
    while result.status == RankingStatus.COMPARE:
        session_id, other = result.session_id, result.compare_with
        if session_id is None or other is None:
            break
        answer = ""
        while answer not in ("1", "2", "q"):
            answer = ask(f"Which do you prefer?\n  1) {movie.title}\n  2) {other.title}\n> ")
            answer = answer.strip().lower()
        if answer == "q":
            return result
        preferred = movie.movie_id if answer == "1" else other.movie_id
        result = service.submit_comparison(session_id, preferred)
    return result


def _report(result: RankingResult) -> None:
    if result.entry is not None:
        print(f"✓ {result.entry.title} ranked #{result.rank}")
    else:
        print(f"Session {result.session_id} left open; resume it later.")


def cmd_list(service: RankingService, user_id: str) -> int:
    print(format_ranking(service.get_ordered(user_id)))
    return 0


def cmd_add(
    service: RankingService, user_id: str, movie_id: str, title: str, ask: Prompt = input
) -> int:
    movie = MovieInfo(movie_id=movie_id, title=title)
    result = service.start_insertion(user_id, movie)
    _report(run_comparisons(service, movie, result, ask))
    return 0


def cmd_rerank(service: RankingService, user_id: str, entry_id: int, ask: Prompt = input) -> int:
    entry = service.store.get_entry(user_id, entry_id)
    if entry is None:
        print(f"✗ No ranked entry #{entry_id}")
        return 1
    result = service.start_rerank(user_id, entry_id)
    _report(run_comparisons(service, entry.to_movie(), result, ask))
    return 0


def cmd_resume(service: RankingService, user_id: str, ask: Prompt = input) -> int:
    session = service.get_active_session(user_id)
    if session is None:
        print("No unfinished session.")
        return 1
    result = service.current_comparison(session.id)
    _report(run_comparisons(service, session.movie, result, ask))
    return 0


def cmd_cancel(service: RankingService, user_id: str) -> int:
    session = service.get_active_session(user_id)
    if session is None:
        print("No unfinished session.")
        return 1
    service.cancel_session(session.id)
    print(f"✓ Cancelled ranking of {session.movie.title}")
    return 0


def cmd_remove(service: RankingService, user_id: str, rank: int) -> int:
    removed = service.remove_at(user_id, rank)
    print(f"✓ Removed {removed.title} from #{rank}")
    return 0


def main(argv: list[str] | None = None, service: RankingService | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(__doc__)
        return 0

    service = service or RankingService()
    command, rest = args[0], args[1:]
    try:
        match command, rest:
            case "list", [user_id]:
                return cmd_list(service, user_id)
            case "add", [user_id, movie_id, *title] if title:
                return cmd_add(service, user_id, movie_id, " ".join(title))
            case "rerank", [user_id, entry_id] if entry_id.isdecimal():
                return cmd_rerank(service, user_id, int(entry_id))
            case "remove", [user_id, rank] if rank.isdecimal():
                return cmd_remove(service, user_id, int(rank))
            case "resume", [user_id]:
                return cmd_resume(service, user_id)
            case "cancel", [user_id]:
                return cmd_cancel(service, user_id)
            case "expire", []:
                print(f"✓ Abandoned {service.expire_idle_sessions()} idle sessions")
                return 0
            case _:
                print(__doc__)
                return 2
    except RankingError as e:
        logger.debug("Command %s failed", command, exc_info=True)
        print(f"✗ {e}")
        return 1


def run() -> None:
    """Console entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    migrate()
    sys.exit(main())


if __name__ == "__main__":
    run()
