from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_THRESHOLD = 3

SCHEMA = """
CREATE TABLE IF NOT EXISTS card_mastery (
    deck_id TEXT NOT NULL,
    card_index INTEGER NOT NULL,
    attempt_count INTEGER DEFAULT 0,
    consecutive_correct INTEGER DEFAULT 0,
    mastered_at TEXT,
    last_seen TEXT,
    PRIMARY KEY (deck_id, card_index)
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MasteryStore:
    """Per-deck card mastery: a card is mastered after N correct answers in a row."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Queries ───────────────────────────────────────────────────────────

    def get_record(self, deck_id: str, card_index: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM card_mastery WHERE deck_id = ? AND card_index = ?",
            (deck_id, card_index),
        ).fetchone()
        return dict(row) if row else None

    def get_mastered_card_indices(
        self, deck_id: str, threshold: int = DEFAULT_THRESHOLD,
    ) -> set[int]:
        rows = self.conn.execute(
            "SELECT card_index FROM card_mastery "
            "WHERE deck_id = ? AND consecutive_correct >= ?",
            (deck_id, threshold),
        ).fetchall()
        return {r["card_index"] for r in rows}

    def is_card_mastered(
        self, deck_id: str, card_index: int, threshold: int = DEFAULT_THRESHOLD,
    ) -> bool:
        record = self.get_record(deck_id, card_index)
        return record is not None and record["consecutive_correct"] >= threshold

    def mastery_percentage(
        self, deck_id: str, total_cards: int, threshold: int = DEFAULT_THRESHOLD,
    ) -> int:
        if total_cards <= 0:
            return 0
        mastered = len(self.get_mastered_card_indices(deck_id, threshold))
        return round(mastered / total_cards * 100)

    # ── Updates ───────────────────────────────────────────────────────────

    def update_card_attempt(
        self,
        deck_id: str,
        card_index: int,
        correct: bool,
        threshold: int = DEFAULT_THRESHOLD,
    ) -> dict | None:
        """Record one answer and return the card's updated record.

        A wrong answer on a mastered card drops the record entirely; on any
        other known card it resets the streak.  A first answer that is wrong
        leaves no record.
        """
        record = self.get_record(deck_id, card_index)
        now = _now()

        if correct:
            if record:
                self.conn.execute(
                    "UPDATE card_mastery SET attempt_count = attempt_count + 1, "
                    "consecutive_correct = consecutive_correct + 1, last_seen = ? "
                    "WHERE deck_id = ? AND card_index = ?",
                    (now, deck_id, card_index),
                )
            else:
                self.conn.execute(
                    "INSERT INTO card_mastery "
                    "(deck_id, card_index, attempt_count, consecutive_correct, mastered_at, last_seen) "
                    "VALUES (?, ?, 1, 1, ?, ?)",
                    (deck_id, card_index, now, now),
                )
        elif record:
            if record["consecutive_correct"] >= threshold:
                self.conn.execute(
                    "DELETE FROM card_mastery WHERE deck_id = ? AND card_index = ?",
                    (deck_id, card_index),
                )
            else:
                self.conn.execute(
                    "UPDATE card_mastery SET attempt_count = attempt_count + 1, "
                    "consecutive_correct = 0, last_seen = ? "
                    "WHERE deck_id = ? AND card_index = ?",
                    (now, deck_id, card_index),
                )
        self.conn.commit()
        return self.get_record(deck_id, card_index)

    def mark_card_mastered(
        self, deck_id: str, card_index: int, threshold: int = DEFAULT_THRESHOLD,
    ) -> None:
        now = _now()
        self.conn.execute(
            """INSERT INTO card_mastery
               (deck_id, card_index, attempt_count, consecutive_correct, mastered_at, last_seen)
               VALUES (?, ?, 1, ?, ?, ?)
               ON CONFLICT(deck_id, card_index) DO UPDATE SET
                 consecutive_correct = MAX(consecutive_correct, excluded.consecutive_correct),
                 mastered_at = excluded.mastered_at,
                 last_seen = excluded.last_seen""",
            (deck_id, card_index, threshold, now, now),
        )
        self.conn.commit()

    def unmark_card_mastered(self, deck_id: str, card_index: int) -> None:
        self.conn.execute(
            "DELETE FROM card_mastery WHERE deck_id = ? AND card_index = ?",
            (deck_id, card_index),
        )
        self.conn.commit()

    def reset_deck(self, deck_id: str) -> int:
        cur = self.conn.execute("DELETE FROM card_mastery WHERE deck_id = ?", (deck_id,))
        self.conn.commit()
        return cur.rowcount
