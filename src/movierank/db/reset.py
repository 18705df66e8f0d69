"""Reset database (development only)."""

from movierank.config import get_settings
from movierank.db.migrate import migrate


def reset() -> None:
    """Delete and recreate the database."""
    settings = get_settings()
    db_path = settings.db_path

    if db_path.exists():
        db_path.unlink()
        print(f"✓ Deleted {db_path}")

    # Also delete WAL and SHM files if they exist
    for suffix in (".db-wal", ".db-shm"):
        sidecar = db_path.with_suffix(suffix)
        if sidecar.exists():
            sidecar.unlink()

    migrate()
    print("✓ Database reset complete")


if __name__ == "__main__":
    reset()
