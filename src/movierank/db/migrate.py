"""Database migrations for movierank."""

from movierank.db.connection import get_connection

SCHEMA = """
-- One row per movie in a user's ranking; ranks are dense 1..N per user.
-- Shifts stage ranks through negative values, so there is no CHECK on rank.
CREATE TABLE IF NOT EXISTS ranked_movies (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  movie_id TEXT NOT NULL,
  title TEXT NOT NULL,
  poster_path TEXT,
  overview TEXT,
  rank INTEGER NOT NULL,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_ranked_user_movie ON ranked_movies(user_id, movie_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_ranked_user_rank ON ranked_movies(user_id, rank);

-- In-flight and finished comparison sessions
CREATE TABLE IF NOT EXISTS comparison_sessions (
  id TEXT PRIMARY KEY,
  user_id TEXT NOT NULL,
  movie_id TEXT NOT NULL,
  title TEXT NOT NULL,
  poster_path TEXT,
  overview TEXT,
  mode TEXT NOT NULL DEFAULT 'insert',
  original_rank INTEGER,
  low INTEGER NOT NULL,
  high INTEGER NOT NULL,
  mid INTEGER,
  compare_movie_id TEXT,
  snapshot_size INTEGER NOT NULL,
  comparisons INTEGER NOT NULL DEFAULT 0,
  state TEXT NOT NULL DEFAULT 'open',
  final_rank INTEGER,
  created_at TIMESTAMP NOT NULL,
  updated_at TIMESTAMP NOT NULL
);

-- At most one active session per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_active_user ON comparison_sessions(user_id)
  WHERE state IN ('open', 'awaiting_answer');
CREATE INDEX IF NOT EXISTS idx_sessions_state_updated ON comparison_sessions(state, updated_at);
"""


def migrate() -> None:
    """Run database migrations."""
    with get_connection() as conn:
        conn.executescript(SCHEMA)
        conn.commit()
    print("✓ Database migrations complete")


if __name__ == "__main__":
    migrate()
