"""Load JSON decks and pick the cards for a round.

Deck file layout:
  {"id": "spanish-basics", "name": "Spanish Basics",
   "content": [{"idx": 0, "level": 1, "side_a": "hola", "side_b": "hello"}, ...]}

Every ``side_*`` key of a content entry becomes a card side.  ``id``
defaults to the file stem, ``idx`` to the entry's position.
"""
from __future__ import annotations

import json
import logging
import random
from collections.abc import Sequence
from pathlib import Path

from flashquiz.models import Card, Deck

_log = logging.getLogger("flashquiz.decks")

RANDOMIZE_GROUP_SIZE = 5


class DeckError(ValueError):
    pass


def card_from_dict(raw: dict, position: int) -> Card:
    sides = {
        k: str(v) for k, v in raw.items()
        if k.startswith("side_") and v is not None
    }
    try:
        level = int(raw.get("level") or 1)
    except (TypeError, ValueError):
        level = 1
    return Card(idx=int(raw.get("idx", position)), sides=sides, level=max(1, level))


def load_deck(path: Path) -> Deck:
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise DeckError(f"{path.name}: invalid JSON ({e})") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("content"), list):
        raise DeckError(f"{path.name}: expected an object with a 'content' list")

    cards = []
    for position, entry in enumerate(raw["content"]):
        if not isinstance(entry, dict):
            raise DeckError(f"{path.name}: content[{position}] is not an object")
        try:
            cards.append(card_from_dict(entry, position))
        except (TypeError, ValueError) as e:
            raise DeckError(f"{path.name}: content[{position}]: {e}") from e

    return Deck(
        id=str(raw.get("id") or path.stem),
        name=str(raw.get("name") or path.stem),
        cards=cards,
        source_file=path.name,
    )


def load_decks(directory: Path) -> dict[str, Deck]:
    """Load every ``*.json`` deck in *directory*, skipping broken files."""
    decks: dict[str, Deck] = {}
    if not directory.is_dir():
        _log.info("Deck directory %s does not exist", directory)
        return decks
    for path in sorted(directory.glob("*.json")):
        try:
            deck = load_deck(path)
        except (DeckError, OSError) as e:
            _log.warning("Skipping deck %s: %s", path.name, e)
            continue
        decks[deck.id] = deck
    _log.info("Loaded %d decks from %s", len(decks), directory)
    return decks


def select_round_cards(
    cards: Sequence[Card],
    progression_mode: str = "sequential",
    cards_per_round: int = 10,
    randomize: bool = False,
    rng: random.Random | None = None,
) -> list[Card]:
    """Order the deck by *progression_mode* and take the first *cards_per_round*.

    ``sequential`` keeps deck order, ``level`` sorts by (level, idx), anything
    else shuffles.  With *randomize*, the non-random orders are shuffled
    within consecutive groups of five so the overall order survives.
    """
    rng = rng or random
    ordered = list(cards)
    if progression_mode == "sequential":
        pass
    elif progression_mode == "level":
        ordered.sort(key=lambda c: (c.level, c.idx))
    else:
        rng.shuffle(ordered)
        randomize = False

    if randomize:
        grouped = []
        for start in range(0, len(ordered), RANDOMIZE_GROUP_SIZE):
            group = ordered[start:start + RANDOMIZE_GROUP_SIZE]
            rng.shuffle(group)
            grouped.extend(group)
        ordered = grouped

    return ordered[:max(0, cards_per_round)]
