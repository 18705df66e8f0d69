#!/usr/bin/env -S uv run python
"""Task runner for working on movierank.

Usage:
    ./dev.py <command> [args...]

Commands:
    test [pytest args...]   Run the test suite
    lint [--fix]            Check style and formatting with ruff
    typecheck               Type-check src/ with mypy and pyright
    check                   lint + typecheck + test
    db-migrate              Create or update the ranking database
    db-reset                Drop the ranking database and recreate it
    rank <args...>          Run the ranking CLI, e.g. ./dev.py rank list alice
    expire-sessions         Abandon idle sessions and purge old finished ones
"""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).parent


def uv_run(*args: str) -> int:
    """Run a tool inside the project environment and return its exit code."""
    cmd = ["uv", "run", *args]
    print(f"\n→ {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=ROOT, check=False).returncode


def lint(fix: bool = False) -> int:
    if fix:
        uv_run("ruff", "format", ".")
        return uv_run("ruff", "check", "--fix", ".")
    format_rc = uv_run("ruff", "format", "--check", ".")
    check_rc = uv_run("ruff", "check", ".")
    return format_rc or check_rc


def typecheck() -> int:
    mypy_rc = uv_run("mypy", "src")
    pyright_rc = uv_run("pyright")
    return mypy_rc or pyright_rc


def check() -> int:
    results = {"lint": lint(), "typecheck": typecheck(), "test": uv_run("pytest")}
    failed = [name for name, rc in results.items() if rc]
    if failed:
        print(f"\n✗ Failed: {', '.join(failed)}")
        return 1
    print("\n✓ All checks passed")
    return 0


def db_reset() -> int:
    answer = input("This deletes every ranked list and session. Continue? [y/N] ")
    if answer.strip().lower() != "y":
        print("Aborted.")
        return 1
    return uv_run("python", "-m", "movierank.db.reset")


def main(argv: list[str]) -> int:
    if not argv:
        print(__doc__)
        return 0

    command, args = argv[0], argv[1:]
    match command:
        case "test":
            return uv_run("pytest", *args)
        case "lint":
            return lint(fix="--fix" in args)
        case "typecheck":
            return typecheck()
        case "check":
            return check()
        case "db-migrate":
            return uv_run("python", "-m", "movierank.db.migrate")
        case "db-reset":
            return db_reset()
        case "rank":
            return uv_run("python", "-m", "movierank.cli", *args)
        case "expire-sessions":
            return uv_run("python", "-m", "movierank.cli", "expire")
        case "help" | "--help" | "-h":
            print(__doc__)
            return 0
        case _:
            print(f"Unknown command: {command}\n{__doc__}")
            return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
