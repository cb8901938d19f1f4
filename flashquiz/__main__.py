"""CLI entry point for flashquiz.

Usage:
  python -m flashquiz serve [--port PORT] [--host HOST]
  python -m flashquiz stop
  python -m flashquiz status
  python -m flashquiz decks
  python -m flashquiz reset-mastery DECK_ID
"""
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".server.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "status":
        _status()
    elif command == "decks":
        _decks()
    elif command == "reset-mastery":
        _reset_mastery(args[1:])
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, status, decks, reset-mastery")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _read_pid() -> int | None:
    """Read PID from file, return None if stale or missing."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None


def _stop() -> bool:
    """Stop a running server. Returns True if a server was stopped."""
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
        print(f"Stopped server (PID {pid}).")
        return True
    except ProcessLookupError:
        print("Server was not running (stale PID file removed).")
        return False
    finally:
        PID_FILE.unlink(missing_ok=True)


def _status():
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
    else:
        print(f"Server is running (PID {pid}).")


def _serve(args: list[str]):
    import uvicorn

    existing = _read_pid()
    if existing is not None:
        print(f"Server already running (PID {existing}). Use 'stop' first.")
        sys.exit(1)

    port = int(_parse_flag(args, "--port", "8766"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    PID_FILE.write_text(str(os.getpid()))

    print(f"Starting Flashquiz on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        uvicorn.run(
            "flashquiz.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        PID_FILE.unlink(missing_ok=True)


def _decks():
    from flashquiz.config import load_settings
    from flashquiz.decks import load_decks
    from flashquiz.mastery import MasteryStore

    settings = load_settings()
    decks = load_decks(settings.decks_full_path)
    if not decks:
        print(f"No decks found in {settings.decks_full_path}")
        return

    store = MasteryStore(settings.db_full_path)
    print(f"{'Deck':<30} {'Cards':>6} {'Mastered':>9}")
    print("=" * 47)
    for deck in decks.values():
        pct = store.mastery_percentage(deck.id, len(deck.cards), settings.mastery_threshold)
        print(f"{deck.id:<30} {len(deck.cards):>6} {pct:>8}%")
    store.close()


def _reset_mastery(args: list[str]):
    if not args:
        print("Usage: python -m flashquiz reset-mastery DECK_ID")
        sys.exit(1)

    from flashquiz.config import load_settings
    from flashquiz.mastery import MasteryStore

    settings = load_settings()
    store = MasteryStore(settings.db_full_path)
    removed = store.reset_deck(args[0])
    store.close()
    print(f"Removed {removed} mastery records for '{args[0]}'.")


if __name__ == "__main__":
    main()
