"""Review scheduling for cards the learner got wrong.

A ``MissedCardTracker`` remembers, per deck, which cards were missed and how
badly.  At the start of the next round its ``schedule()`` weaves those cards
back into the upcoming card list using one of two algorithms:

  smart_spaced  adaptive spacing from difficulty, miss count and time since
                the miss, with anti-clustering so reviews never pile up
  leitner_box   fixed box intervals (2, 4, 8, 16, 32) chosen by miss count,
                scaled by the aggressiveness setting
"""
from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from flashquiz.models import Card

_log = logging.getLogger("flashquiz.review")

# Answers slower than this count as a struggle even on the first miss
SLOW_RESPONSE_SECONDS = 10.0

# Time since the miss stops mattering after a minute
RECENCY_WINDOW_SECONDS = 60.0

BOX_INTERVALS = (2, 4, 8, 16, 32)

AGGRESSIVENESS = {
    "gentle": 1.5,
    "balanced": 1.0,
    "intensive": 0.5,
}


@dataclass(frozen=True)
class SchedulerConfig:
    algorithm: str = "smart_spaced"  # smart_spaced | leitner_box
    aggressiveness: str = "balanced"  # gentle | balanced | intensive
    min_spacing: int = 2
    max_spacing: int = 8
    cluster_limit: int = 2  # reviews placed back-to-back before one is pushed out
    progress_ratio: float = 0.3  # minimum share of fresh cards in the result
    difficulty_weight: float = 0.5


@dataclass
class MissedCard:
    card_index: int
    miss_count: int = 1
    last_seen: float = 0.0
    difficulty: float = 0.5
    response_time: float = 0.0


def _find_card(card_index: int, upcoming: Sequence[Card], deck_cards: Sequence[Card]) -> Card | None:
    for card in upcoming:
        if card.idx == card_index:
            return card
    for card in deck_cards:
        if card.idx == card_index:
            return card
    return None


class SmartSpacedScheduler:
    name = "Smart Spaced Reinforcement"
    description = "Adaptive spacing based on performance with anti-clustering"

    def position(
        self,
        missed: MissedCard,
        queue_size: int,
        config: SchedulerConfig,
        rng: random.Random,
        now: float,
    ) -> int:
        base = config.min_spacing
        span = config.max_spacing - base
        difficulty_factor = 1 - missed.difficulty * config.difficulty_weight
        attempt_factor = min(1.0, missed.miss_count / 3)
        time_factor = min(1.0, (now - missed.last_seen) / RECENCY_WINDOW_SECONDS)
        spacing = base + math.floor(
            span * difficulty_factor * (1 - attempt_factor) * max(0.5, time_factor)
        )
        jitter = rng.randint(-1, 1)
        return max(base, min(queue_size - 1, spacing + jitter))

    def schedule(
        self,
        missed_cards: Sequence[MissedCard],
        upcoming: Sequence[Card],
        config: SchedulerConfig,
        deck_cards: Sequence[Card] = (),
        rng: random.Random | None = None,
        now: float | None = None,
    ) -> list[Card]:
        rng = rng or random
        now = time.monotonic() if now is None else now
        ranked = [
            (m, self.position(m, len(upcoming), config, rng, now))
            for m in missed_cards
        ]
        # Hardest cards claim their slots first
        ranked.sort(key=lambda pair: -pair[0].difficulty)

        entries: list[tuple[Card, bool]] = [(c, False) for c in upcoming]
        taken: set[int] = set()
        step = max(1, config.min_spacing)
        consecutive = 0
        for missed, position in ranked:
            card = _find_card(missed.card_index, upcoming, deck_cards)
            if card is None:
                _log.debug("Missed card %d no longer in deck", missed.card_index)
                continue
            if consecutive >= config.cluster_limit:
                position += config.cluster_limit
                consecutive = 0
            while position in taken:
                position += step
            entries.insert(position, (card, True))
            taken.add(position)
            consecutive += 1

        if entries and len(upcoming) / len(entries) < config.progress_ratio:
            entries = self._redistribute(entries, config.progress_ratio)
        return [card for card, _ in entries]

    def _redistribute(self, entries: list[tuple[Card, bool]], target_ratio: float) -> list[tuple[Card, bool]]:
        """Spread reviews evenly so fresh cards keep at least *target_ratio* of the slots."""
        fresh = [e for e in entries if not e[1]]
        reviews = [e for e in entries if e[1]]
        if len(fresh) >= math.floor(len(entries) * target_ratio):
            return entries

        result = list(fresh)
        spacing = len(entries) // len(reviews)
        position = spacing
        for entry in reviews:
            result.insert(min(position, len(result)), entry)
            position += spacing
        return result


class LeitnerBoxScheduler:
    name = "Leitner Box System"
    description = "Classic spaced repetition with exponential intervals"

    @staticmethod
    def box_for(missed: MissedCard) -> int:
        """More misses move a card down to a box with a shorter interval."""
        return max(0, len(BOX_INTERVALS) - missed.miss_count)

    @staticmethod
    def interval(box: int, config: SchedulerConfig) -> int:
        base = BOX_INTERVALS[min(box, len(BOX_INTERVALS) - 1)]
        return round(base * AGGRESSIVENESS.get(config.aggressiveness, 1.0))

    def schedule(
        self,
        missed_cards: Sequence[MissedCard],
        upcoming: Sequence[Card],
        config: SchedulerConfig,
        deck_cards: Sequence[Card] = (),
        rng: random.Random | None = None,
        now: float | None = None,
    ) -> list[Card]:
        boxes: dict[int, list[MissedCard]] = {}
        for missed in missed_cards:
            boxes.setdefault(self.box_for(missed), []).append(missed)

        result = list(upcoming)
        for box, group in boxes.items():
            interval = self.interval(box, config)
            for i, missed in enumerate(group):
                card = _find_card(missed.card_index, upcoming, deck_cards)
                if card is None:
                    continue
                result.insert(min(interval + i * config.min_spacing, len(result)), card)
        return result


SCHEDULERS = {
    "smart_spaced": SmartSpacedScheduler(),
    "leitner_box": LeitnerBoxScheduler(),
}


def get_scheduler(algorithm: str):
    try:
        return SCHEDULERS[algorithm]
    except KeyError:
        raise ValueError(f"Unknown scheduling algorithm: {algorithm}") from None


def register_scheduler(key: str, scheduler) -> None:
    SCHEDULERS[key] = scheduler


def available_algorithms() -> list[dict]:
    return [
        {"key": key, "name": s.name, "description": s.description}
        for key, s in SCHEDULERS.items()
    ]


class MissedCardTracker:
    """Missed cards of one deck, carried from round to round."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._missed: dict[int, MissedCard] = {}

    def __len__(self) -> int:
        return len(self._missed)

    @property
    def missed_cards(self) -> list[MissedCard]:
        return list(self._missed.values())

    def get(self, card_index: int) -> MissedCard | None:
        return self._missed.get(card_index)

    def track_missed(self, card_index: int, response_time: float = 0.0) -> MissedCard:
        missed = self._missed.get(card_index)
        if missed is None:
            missed = MissedCard(card_index=card_index, miss_count=0)
            self._missed[card_index] = missed
        missed.miss_count += 1
        missed.last_seen = self._clock()
        missed.response_time = response_time
        slow = 0.3 if response_time > SLOW_RESPONSE_SECONDS else 0.0
        missed.difficulty = min(1.0, missed.miss_count * 0.2 + slow)
        return missed

    def mark_correct(self, card_index: int) -> None:
        missed = self._missed.get(card_index)
        if missed is None:
            return
        if missed.miss_count == 1:
            del self._missed[card_index]
            return
        missed.difficulty *= 0.7
        missed.miss_count = max(0, missed.miss_count - 1)

    def schedule(
        self,
        upcoming: Sequence[Card],
        config: SchedulerConfig,
        deck_cards: Sequence[Card] = (),
        rng: random.Random | None = None,
    ) -> list[Card]:
        """Return *upcoming* with the missed cards woven back in."""
        if not self._missed:
            return list(upcoming)
        scheduler = get_scheduler(config.algorithm)
        scheduled = scheduler.schedule(
            self.missed_cards, upcoming, config, deck_cards, rng=rng, now=self._clock(),
        )
        _log.info(
            "%s: %d review cards added to %d upcoming",
            scheduler.name, len(scheduled) - len(upcoming), len(upcoming),
        )
        return scheduled

    def reset(self) -> None:
        self._missed.clear()
